"""Bounded in-process job queue between the request path and generation workers."""

import asyncio
import secrets
from dataclasses import dataclass, field

import structlog

from fortyfive.services.exceptions import QueueFullError

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_CAPACITY = 100


def new_job_id() -> str:
    """Return 16 random bytes hex-encoded (32 characters)."""
    return secrets.token_hex(16)


@dataclass
class Job:
    """Transient unit of generation work, correlated 1:1 with a Generation row."""

    job_id: str
    user_id: int
    template_id: int
    image_data: bytes = field(repr=False)


class JobQueue:
    """FIFO buffer of pending jobs with a fixed capacity.

    submit() never waits: a full buffer rejects the job immediately. take()
    waits until a job is available. Each job is handed to exactly one taker
    and is never re-queued.
    """

    def __init__(self, capacity: int = DEFAULT_QUEUE_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._queue: asyncio.Queue[Job] = asyncio.Queue(maxsize=capacity)

    def submit(self, job: Job) -> str:
        """Enqueue without blocking.

        Returns:
            The job's id

        Raises:
            QueueFullError: If the buffer is at capacity
        """
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning("queue.full", job_id=job.job_id, capacity=self.capacity)
            raise QueueFullError(self.capacity) from None
        logger.info("queue.job_added", job_id=job.job_id, depth=self._queue.qsize())
        return job.job_id

    async def take(self) -> Job:
        """Wait for and remove the oldest job."""
        job = await self._queue.get()
        self._queue.task_done()
        return job

    def qsize(self) -> int:
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()

    def drain(self) -> list[Job]:
        """Remove and return every buffered job without delivering it."""
        jobs = []
        while True:
            try:
                jobs.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return jobs
            self._queue.task_done()
