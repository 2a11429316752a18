"""Generation pipeline executed by a worker for each dequeued job.

Sequence per job (each failure is terminal, there are no retries):

1. Mark the record processing, progress 10
2. Resolve the template (TemplateNotFound)
3. Mark progress 50
4. Call the image generation provider, bounded by a timeout
   (GenerationFailed / NoImagesProduced)
5. Store the first URL as the result and mark the record completed
6. Debit the template cost and append the generation ledger entry

Steps 1-5 each run in their own short UnitOfWork so pollers observe progress
as it happens. Step 6 runs in one UnitOfWork: the debit and the ledger entry
commit together or not at all. A failure in step 6 is logged and leaves the
completed status in place; the user keeps the image.

This pipeline performs no content-safety or balance check. Those run only on
the synchronous path (GenerationService.generate_sync).
"""

import asyncio
import time

import structlog
from structlog.typing import FilteringBoundLogger

from fortyfive.core.timezone import utcnow
from fortyfive.models.generation import GenerationStatus
from fortyfive.models.template import Template
from fortyfive.services import credits
from fortyfive.services.exceptions import (
    GenerationFailed,
    NoImagesProduced,
    TemplateNotFound,
)
from fortyfive.services.image_generation.provider import ImageGenerationProvider
from fortyfive.uow import UnitOfWorkFactory
from fortyfive.workers.job_queue import Job

logger = structlog.get_logger(__name__)

PROGRESS_STARTED = 10
PROGRESS_GENERATING = 50


async def call_provider(
    provider: ImageGenerationProvider,
    template_id: int,
    image_bytes: bytes,
    timeout: float | None,
) -> list[str]:
    """Invoke the provider and normalize every failure to GenerationFailed.

    Raises:
        GenerationFailed: Provider error, unexpected exception or timeout
        NoImagesProduced: Provider returned no URLs
    """
    try:
        image_urls = await asyncio.wait_for(provider.generate(template_id, image_bytes), timeout)
    except GenerationFailed:
        raise
    except asyncio.TimeoutError as e:
        raise GenerationFailed(f"provider timed out after {timeout}s") from e
    except Exception as e:
        raise GenerationFailed(str(e) or type(e).__name__) from e

    if not image_urls:
        raise NoImagesProduced()
    return list(image_urls)


class GenerationPipeline:
    """Runs one job from processing to a terminal state.

    Receives its collaborators explicitly: the UnitOfWork factory (generation
    store, template lookup, user balance, ledger) and the image provider.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        provider: ImageGenerationProvider,
        generation_timeout: float | None = None,
    ):
        self._uow_factory = uow_factory
        self._provider = provider
        self._generation_timeout = generation_timeout

    async def run(self, job: Job, worker_id: int = 0) -> GenerationStatus | None:
        """Process a job to completion.

        Never raises for job-level failures; they are written to the
        Generation row instead.

        Returns:
            Terminal status written for the job, or None if the record could
            not be moved to processing (the job is then abandoned)
        """
        log = logger.bind(job_id=job.job_id, worker_id=worker_id, user_id=job.user_id)
        start_time = time.time()
        log.info("generation.job.started", template_id=job.template_id)

        try:
            async with await self._uow_factory() as uow:
                await uow.generations.update_status(
                    job.job_id, GenerationStatus.PROCESSING, PROGRESS_STARTED
                )
        except Exception as e:
            log.error(
                "generation.job.status_update_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        try:
            template = await self._load_template(job.template_id)
            await self._mark_progress(job, PROGRESS_GENERATING, log)
            image_urls = await call_provider(
                self._provider, job.template_id, job.image_data, self._generation_timeout
            )
        except TemplateNotFound as e:
            return await self._record_failure(job, f"Template not found: {e.template_id}", log)
        except NoImagesProduced as e:
            return await self._record_failure(job, str(e), log)
        except GenerationFailed as e:
            return await self._record_failure(job, f"Generation failed: {e}", log)
        except Exception as e:
            log.error(
                "generation.job.unexpected_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return await self._record_failure(job, f"Generation failed: {e}", log)

        image_url = image_urls[0]
        try:
            async with await self._uow_factory() as uow:
                await uow.generations.update_with_result(
                    job.job_id, GenerationStatus.COMPLETED, image_url, utcnow()
                )
        except Exception as e:
            log.error(
                "generation.job.result_write_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        await self._charge(job, template, log)

        log.info(
            "generation.job.completed",
            image_url=image_url,
            duration_seconds=time.time() - start_time,
        )
        return GenerationStatus.COMPLETED

    async def _load_template(self, template_id: int) -> Template:
        async with await self._uow_factory() as uow:
            template = await uow.templates.get_by_id(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    async def _mark_progress(self, job: Job, progress: int, log: FilteringBoundLogger) -> None:
        # Progress milestones are advisory: a failed write does not fail the job
        try:
            async with await self._uow_factory() as uow:
                await uow.generations.update_status(
                    job.job_id, GenerationStatus.PROCESSING, progress
                )
        except Exception as e:
            log.warning(
                "generation.job.progress_update_failed",
                progress=progress,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _charge(self, job: Job, template: Template, log: FilteringBoundLogger) -> None:
        try:
            async with await self._uow_factory() as uow:
                await credits.debit_for_generation(uow, job.user_id, template)
        except Exception as e:
            # Completed status stays; debit and ledger entry were both rolled back
            log.error(
                "generation.charge_failed",
                template_id=template.id,
                amount=template.credit_cost,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _record_failure(
        self, job: Job, error_message: str, log: FilteringBoundLogger
    ) -> GenerationStatus | None:
        log.warning("generation.job.failed", error=error_message)
        try:
            async with await self._uow_factory() as uow:
                await uow.generations.update_with_error(job.job_id, error_message, utcnow())
        except Exception as e:
            log.error(
                "generation.job.error_write_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        return GenerationStatus.FAILED
