"""Worker pool draining the job queue.

Each worker is an asyncio task looping: wait for the next job or the shutdown
signal, whichever comes first, then run the generation pipeline for that job
to completion before waiting again. Workers are symmetric and keep no state
between jobs.

Worker states: running -> draining (shutdown requested while a job is in
flight) -> stopped.

Shutdown sets the signal and waits for every worker to stop. Workers are
never force-killed: if the timeout elapses first, ShutdownTimeout is raised
and any in-flight pipeline keeps running unobserved. Jobs still buffered in
the queue are not delivered; their count is returned (and logged) so the
caller can report them.
"""

import asyncio
from enum import Enum

import structlog

from fortyfive.services.exceptions import ShutdownTimeout
from fortyfive.workers.job_queue import Job, JobQueue
from fortyfive.workers.pipeline import GenerationPipeline

logger = structlog.get_logger(__name__)

DEFAULT_WORKER_COUNT = 2
DEFAULT_SHUTDOWN_TIMEOUT = 30.0


class WorkerState(str, Enum):
    """Lifecycle state of a single worker."""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class WorkerPool:
    """Fixed set of concurrent consumers of a JobQueue."""

    def __init__(
        self,
        queue: JobQueue,
        pipeline: GenerationPipeline,
        size: int = DEFAULT_WORKER_COUNT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ):
        if size < 1:
            raise ValueError("size must be >= 1")
        self.queue = queue
        self.pipeline = pipeline
        self.size = size
        self.shutdown_timeout = shutdown_timeout
        self._shutdown_event = asyncio.Event()
        self._tasks: dict[int, asyncio.Task] = {}
        self._states: dict[int, WorkerState] = {}
        self._current_jobs: dict[int, str] = {}

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    @property
    def states(self) -> dict[int, WorkerState]:
        return dict(self._states)

    def start(self) -> None:
        """Spawn the worker tasks. Must be called from a running event loop."""
        if self._tasks:
            raise RuntimeError("worker pool already started")

        logger.info("worker_pool.starting", worker_count=self.size)
        for worker_id in range(1, self.size + 1):
            self._states[worker_id] = WorkerState.RUNNING
            self._tasks[worker_id] = asyncio.create_task(
                self._run_worker(worker_id), name=f"generation-worker-{worker_id}"
            )

    async def _next_job(self) -> Job | None:
        """Wait for a job or the shutdown signal. Returns None on shutdown."""
        take = asyncio.ensure_future(self.queue.take())
        stop = asyncio.ensure_future(self._shutdown_event.wait())
        try:
            await asyncio.wait({take, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (take, stop):
                if not waiter.done():
                    waiter.cancel()

        # A job that was already dequeued is always processed
        if take.done() and not take.cancelled():
            return take.result()
        return None

    async def _run_worker(self, worker_id: int) -> None:
        log = logger.bind(worker_id=worker_id)
        log.info("worker.started")

        try:
            while not self._shutdown_event.is_set():
                job = await self._next_job()
                if job is None:
                    break

                self._current_jobs[worker_id] = job.job_id
                try:
                    # Cancelling the worker must not interrupt an in-flight pipeline
                    await asyncio.shield(self.pipeline.run(job, worker_id=worker_id))
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    log.error(
                        "worker.job_crashed",
                        job_id=job.job_id,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
                finally:
                    self._current_jobs.pop(worker_id, None)

            log.info("worker.shutdown_complete")

        except asyncio.CancelledError:
            log.info("worker.cancelled")
            raise

        finally:
            self._states[worker_id] = WorkerState.STOPPED

    async def shutdown(self, timeout: float | None = None) -> int:
        """Signal every worker to stop and wait for them.

        Args:
            timeout: Seconds to wait (defaults to the pool's shutdown_timeout)

        Returns:
            Number of jobs left buffered in the queue (never delivered)

        Raises:
            ShutdownTimeout: If a worker is still running when the timeout elapses
        """
        timeout = self.shutdown_timeout if timeout is None else timeout
        logger.info("worker_pool.shutting_down", timeout=timeout)

        self._shutdown_event.set()
        for worker_id in self._current_jobs:
            self._states[worker_id] = WorkerState.DRAINING

        tasks = [task for task in self._tasks.values() if not task.done()]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                logger.error(
                    "worker_pool.shutdown_timeout",
                    timeout=timeout,
                    still_running=len(pending),
                    in_flight_jobs=sorted(self._current_jobs.values()),
                )
                raise ShutdownTimeout(timeout, len(pending))

        undelivered = self.queue.qsize()
        logger.info("worker_pool.stopped", undelivered_jobs=undelivered)
        return undelivered
