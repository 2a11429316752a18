"""Generation pipeline and worker pool tests.

Covers the per-job state machine (processing -> completed | failed), the
credit debit recorded after a successful generation, and pool shutdown.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from conftest import FakeImageProvider, get_credits
from fortyfive.models.generation import Generation, GenerationStatus
from fortyfive.models.transaction import TransactionType
from fortyfive.repositories.template import TemplateRepository
from fortyfive.services.exceptions import ShutdownTimeout, TransientGenerationError
from fortyfive.workers.job_queue import Job, JobQueue, new_job_id
from fortyfive.workers.pipeline import GenerationPipeline
from fortyfive.workers.pool import WorkerPool, WorkerState


async def create_job(uow_factory, user_id: int, template_id: int) -> Job:
    job = Job(job_id=new_job_id(), user_id=user_id, template_id=template_id, image_data=b"img")
    async with await uow_factory() as uow:
        await uow.generations.create(
            Generation(job_id=job.job_id, user_id=user_id, template_id=template_id)
        )
    return job


async def get_generation(uow_factory, job_id: str) -> Generation:
    async with await uow_factory() as uow:
        generation = await uow.generations.get_by_job_id(job_id)
    assert generation is not None
    return generation


async def wait_for_terminal(uow_factory, job_id: str, timeout: float = 5.0) -> Generation:
    async def poll():
        while True:
            generation = await get_generation(uow_factory, job_id)
            if generation.status.is_terminal:
                return generation
            await asyncio.sleep(0.01)

    return await asyncio.wait_for(poll(), timeout)


class TestGenerationPipeline:
    """Pipeline.run drives a single job to a terminal state."""

    @pytest.mark.asyncio
    async def test_success_completes_and_debits(self, uow_factory, user, template):
        job = await create_job(uow_factory, user.id, template.id)
        pipeline = GenerationPipeline(uow_factory, FakeImageProvider(urls=["url1", "url2"]))

        result = await pipeline.run(job)

        assert result == GenerationStatus.COMPLETED
        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.COMPLETED
        assert generation.progress == 100
        assert generation.image_url == "url1"
        assert generation.started_at is not None
        assert generation.completed_at is not None
        assert generation.error is None

        assert await get_credits(uow_factory, user.id) == 30
        async with await uow_factory() as uow:
            entries = await uow.transactions.list_by_user(user.id)
        assert len(entries) == 1
        assert entries[0].type == TransactionType.GENERATION
        assert entries[0].amount == -20
        assert entries[0].related_template_id == template.id

    @pytest.mark.asyncio
    async def test_provider_error_fails_job_without_debit(self, uow_factory, user, template):
        job = await create_job(uow_factory, user.id, template.id)
        provider = FakeImageProvider(error=TransientGenerationError("rate limited"))

        result = await GenerationPipeline(uow_factory, provider).run(job)

        assert result == GenerationStatus.FAILED
        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.FAILED
        assert generation.error == "Generation failed: rate limited"
        assert generation.image_url is None
        assert await get_credits(uow_factory, user.id) == 50

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_fails_job(self, uow_factory, user, template):
        job = await create_job(uow_factory, user.id, template.id)
        provider = FakeImageProvider(error=RuntimeError("socket closed"))

        await GenerationPipeline(uow_factory, provider).run(job)

        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.FAILED
        assert generation.error == "Generation failed: socket closed"

    @pytest.mark.asyncio
    async def test_empty_result_fails_with_no_images(self, uow_factory, user, template):
        job = await create_job(uow_factory, user.id, template.id)

        await GenerationPipeline(uow_factory, FakeImageProvider(urls=[])).run(job)

        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.FAILED
        assert generation.error == "No images generated"
        assert await get_credits(uow_factory, user.id) == 50

    @pytest.mark.asyncio
    async def test_unknown_template_fails_before_provider_call(self, uow_factory, user):
        job = await create_job(uow_factory, user.id, template_id=404)
        provider = FakeImageProvider()

        await GenerationPipeline(uow_factory, provider).run(job)

        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.FAILED
        assert generation.error == "Template not found: 404"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_timeout_fails_job(self, uow_factory, user, template):
        job = await create_job(uow_factory, user.id, template.id)
        provider = FakeImageProvider(gate=asyncio.Event())

        await GenerationPipeline(uow_factory, provider, generation_timeout=0.05).run(job)

        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.FAILED
        assert generation.error is not None
        assert "timed out" in generation.error

    @pytest.mark.asyncio
    async def test_storage_error_during_lookup_fails_job(
        self, uow_factory, user, template, monkeypatch
    ):
        """An unexpected error mid-pipeline is recorded, not left in processing."""

        async def broken_get_by_id(self, template_id):
            raise OperationalError("SELECT templates", {}, Exception("database is locked"))

        monkeypatch.setattr(TemplateRepository, "get_by_id", broken_get_by_id)
        job = await create_job(uow_factory, user.id, template.id)
        provider = FakeImageProvider()

        result = await GenerationPipeline(uow_factory, provider).run(job)

        assert result == GenerationStatus.FAILED
        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.FAILED
        assert generation.error is not None
        assert generation.error.startswith("Generation failed:")
        assert "database is locked" in generation.error
        assert provider.calls == []
        assert await get_credits(uow_factory, user.id) == 50

    @pytest.mark.asyncio
    async def test_charge_failure_keeps_completed_status(self, uow_factory, template):
        """Debit for an unknown user fails; the image is still delivered."""
        job = await create_job(uow_factory, user_id=9999, template_id=template.id)

        result = await GenerationPipeline(uow_factory, FakeImageProvider()).run(job)

        assert result == GenerationStatus.COMPLETED
        generation = await get_generation(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.COMPLETED
        async with await uow_factory() as uow:
            assert await uow.transactions.count_by_user(9999) == 0

    @pytest.mark.asyncio
    async def test_missing_record_abandons_job(self, uow_factory, user, template):
        job = Job(job_id=new_job_id(), user_id=user.id, template_id=template.id, image_data=b"x")
        provider = FakeImageProvider()

        assert await GenerationPipeline(uow_factory, provider).run(job) is None
        assert provider.calls == []


class TestWorkerPool:
    """Pool delivers queued jobs to workers and shuts down cooperatively."""

    @pytest.mark.asyncio
    async def test_submitted_job_reaches_completed(self, uow_factory, user, template):
        queue = JobQueue(capacity=10)
        pool = WorkerPool(queue, GenerationPipeline(uow_factory, FakeImageProvider()), size=2)
        pool.start()
        try:
            job = await create_job(uow_factory, user.id, template.id)
            queue.submit(job)

            generation = await wait_for_terminal(uow_factory, job.job_id)
        finally:
            await pool.shutdown(timeout=5)

        assert generation.status == GenerationStatus.COMPLETED
        assert generation.progress == 100
        assert generation.image_url == "url1"

    @pytest.mark.asyncio
    async def test_failed_job_stays_failed(self, uow_factory, user, template):
        queue = JobQueue(capacity=10)
        provider = FakeImageProvider(error=TransientGenerationError("upstream 503"))
        pool = WorkerPool(queue, GenerationPipeline(uow_factory, provider), size=2)
        pool.start()
        try:
            job = await create_job(uow_factory, user.id, template.id)
            queue.submit(job)
            failed = await wait_for_terminal(uow_factory, job.job_id)
        finally:
            await pool.shutdown(timeout=5)

        assert failed.status == GenerationStatus.FAILED
        assert failed.error == "Generation failed: upstream 503"

        # Pool fully drained: nothing may touch the record again
        again = await get_generation(uow_factory, job.job_id)
        assert again.status == GenerationStatus.FAILED
        assert again.error == failed.error
        assert again.image_url is None
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_each_job_processed_once(self, uow_factory, user, template):
        async with await uow_factory() as uow:
            await uow.users.adjust_credits(user.id, 1000)

        queue = JobQueue(capacity=20)
        provider = FakeImageProvider()
        pool = WorkerPool(queue, GenerationPipeline(uow_factory, provider), size=3)
        pool.start()
        try:
            jobs = [await create_job(uow_factory, user.id, template.id) for _ in range(6)]
            for job in jobs:
                queue.submit(job)
            for job in jobs:
                await wait_for_terminal(uow_factory, job.job_id)
        finally:
            await pool.shutdown(timeout=5)

        assert len(provider.calls) == 6
        async with await uow_factory() as uow:
            assert await uow.transactions.count_by_user(user.id) == 6
        assert await get_credits(uow_factory, user.id) == 1050 - 6 * 20

    @pytest.mark.asyncio
    async def test_shutdown_reports_undelivered_jobs(self, uow_factory, user, template):
        """Jobs still buffered when shutdown starts are not delivered."""
        queue = JobQueue(capacity=10)
        gate = asyncio.Event()
        provider = FakeImageProvider(gate=gate)
        pool = WorkerPool(queue, GenerationPipeline(uow_factory, provider), size=1)
        pool.start()

        jobs = [await create_job(uow_factory, user.id, template.id) for _ in range(3)]
        for job in jobs:
            queue.submit(job)

        # Wait until the single worker is blocked inside the provider
        while not provider.calls:
            await asyncio.sleep(0.01)

        shutdown = asyncio.create_task(pool.shutdown(timeout=5))
        await asyncio.sleep(0.05)
        assert pool.states[1] == WorkerState.DRAINING

        gate.set()
        undelivered = await shutdown

        assert undelivered == 2
        assert pool.states == {1: WorkerState.STOPPED}
        first = await get_generation(uow_factory, jobs[0].job_id)
        assert first.status == GenerationStatus.COMPLETED
        rest = await get_generation(uow_factory, jobs[1].job_id)
        assert rest.status == GenerationStatus.PENDING

    @pytest.mark.asyncio
    async def test_shutdown_timeout_when_job_hangs(self, uow_factory, user, template):
        queue = JobQueue(capacity=10)
        gate = asyncio.Event()
        provider = FakeImageProvider(gate=gate)
        pool = WorkerPool(queue, GenerationPipeline(uow_factory, provider), size=1)
        pool.start()

        job = await create_job(uow_factory, user.id, template.id)
        queue.submit(job)
        while not provider.calls:
            await asyncio.sleep(0.01)

        with pytest.raises(ShutdownTimeout) as exc_info:
            await pool.shutdown(timeout=0.05)
        assert exc_info.value.still_running == 1

        # The in-flight job is not killed and finishes once unblocked
        gate.set()
        generation = await wait_for_terminal(uow_factory, job.job_id)
        assert generation.status == GenerationStatus.COMPLETED
        await pool.shutdown(timeout=5)

    @pytest.mark.asyncio
    async def test_idle_pool_stops_promptly(self, uow_factory):
        pool = WorkerPool(JobQueue(), GenerationPipeline(uow_factory, FakeImageProvider()), size=3)
        pool.start()
        assert pool.started
        assert set(pool.states.values()) == {WorkerState.RUNNING}

        assert await pool.shutdown(timeout=1) == 0
        assert set(pool.states.values()) == {WorkerState.STOPPED}

    @pytest.mark.asyncio
    async def test_pool_size_must_be_positive(self, uow_factory):
        with pytest.raises(ValueError):
            WorkerPool(JobQueue(), GenerationPipeline(uow_factory, FakeImageProvider()), size=0)

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, uow_factory):
        pool = WorkerPool(JobQueue(), GenerationPipeline(uow_factory, FakeImageProvider()))
        pool.start()
        try:
            with pytest.raises(RuntimeError):
                pool.start()
        finally:
            await pool.shutdown(timeout=1)
