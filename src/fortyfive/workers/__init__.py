"""Background generation workers: job queue, pipeline and worker pool."""

from fortyfive.workers.job_queue import Job, JobQueue, new_job_id
from fortyfive.workers.pipeline import GenerationPipeline
from fortyfive.workers.pool import WorkerPool, WorkerState

__all__ = [
    "Job",
    "JobQueue",
    "new_job_id",
    "GenerationPipeline",
    "WorkerPool",
    "WorkerState",
]
