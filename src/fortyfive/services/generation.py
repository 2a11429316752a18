"""Generation service: the operations the HTTP layer calls.

Two entry points produce images:

- submit_job (asynchronous): creates a pending Generation row, enqueues the
  job and returns its id at once. Workers run the pipeline later; no
  content-safety or balance check happens on this path.
- generate_sync (synchronous): validates the image, checks content safety
  and the balance, calls the provider inline and debits the user, returning
  the images directly. No Generation row is written.

The two paths deliberately keep their different checks and response shapes.
"""

from dataclasses import dataclass, field

import structlog

from fortyfive.core.timezone import utcnow
from fortyfive.models.generation import Generation, GenerationStatus
from fortyfive.services import credits
from fortyfive.services.content_safety import ContentSafetyChecker
from fortyfive.services.exceptions import (
    JobNotFound,
    NotCompletedError,
    QueueFullError,
    SafetyError,
    StorageError,
    TemplateNotFound,
    UserNotFound,
    ValidationError,
)
from fortyfive.services.image_generation.provider import ImageGenerationProvider
from fortyfive.uow import UnitOfWorkFactory
from fortyfive.workers.job_queue import Job, JobQueue, new_job_id
from fortyfive.workers.pipeline import call_provider

logger = structlog.get_logger(__name__)


@dataclass
class GenerationStatusView:
    """Public status of a queued job."""

    job_id: str
    status: GenerationStatus
    progress: int
    image_url: str | None = None
    error: str | None = None


@dataclass
class GenerationResultView:
    """Public result of a completed job."""

    job_id: str
    image_url: str
    status: GenerationStatus


@dataclass
class SyncGenerationResult:
    """Inline result of the synchronous path."""

    images: list[str] = field(default_factory=list)
    credits_used: int = 0


class GenerationService:
    """Entry points for submitting, polling and running generations."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        queue: JobQueue,
        provider: ImageGenerationProvider,
        safety_checker: ContentSafetyChecker,
        max_image_bytes: int,
        generation_timeout: float | None = None,
    ):
        self._uow_factory = uow_factory
        self._queue = queue
        self._provider = provider
        self._safety_checker = safety_checker
        self._max_image_bytes = max_image_bytes
        self._generation_timeout = generation_timeout

    def validate_image(self, image_bytes: bytes | None) -> bytes:
        """Reject missing, empty or oversized uploads.

        Raises:
            ValidationError: If the image cannot be used
        """
        if not image_bytes:
            raise ValidationError("image data is required")
        if len(image_bytes) > self._max_image_bytes:
            raise ValidationError(
                f"image is too large ({len(image_bytes)} bytes, max {self._max_image_bytes})"
            )
        return image_bytes

    async def check_content_safety(self, image_bytes: bytes) -> None:
        """Run the content-safety checker.

        Raises:
            SafetyError: If the image is rejected or the check itself fails
        """
        try:
            safe = await self._safety_checker.validate(image_bytes)
        except Exception as e:
            raise SafetyError(f"content safety check failed: {e}") from e
        if not safe:
            raise SafetyError("image content is not safe")

    async def submit_job(self, user_id: int, template_id: int, image_bytes: bytes) -> str:
        """Create the pending record and enqueue the job.

        Returns:
            The new job id (32 hex characters)

        Raises:
            ValidationError: If image_bytes is empty or oversized
            StorageError: If the record cannot be created
            QueueFullError: If the queue is at capacity (the record is marked failed)
        """
        self.validate_image(image_bytes)

        job_id = new_job_id()
        async with await self._uow_factory() as uow:
            await uow.generations.create(
                Generation(job_id=job_id, user_id=user_id, template_id=template_id)
            )

        try:
            self._queue.submit(
                Job(job_id=job_id, user_id=user_id, template_id=template_id, image_data=image_bytes)
            )
        except QueueFullError:
            await self._fail_rejected(job_id)
            raise

        logger.info(
            "generation.job.queued",
            job_id=job_id,
            user_id=user_id,
            template_id=template_id,
        )
        return job_id

    async def _fail_rejected(self, job_id: str) -> None:
        # A rejected job must not leave a row that stays pending forever
        try:
            async with await self._uow_factory() as uow:
                await uow.generations.update_with_error(job_id, "queue is full", utcnow())
        except Exception as e:
            logger.error(
                "generation.job.reject_write_failed",
                job_id=job_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def get_status(self, job_id: str) -> GenerationStatusView:
        """Read the job's current status.

        Raises:
            JobNotFound: If the job id is unknown
        """
        async with await self._uow_factory() as uow:
            generation = await uow.generations.get_by_job_id(job_id)
        if generation is None:
            raise JobNotFound(job_id)

        return GenerationStatusView(
            job_id=generation.job_id,
            status=generation.status,
            progress=generation.progress,
            image_url=generation.image_url,
            error=generation.error,
        )

    async def get_result(self, job_id: str) -> GenerationResultView:
        """Read the result of a completed job.

        Raises:
            JobNotFound: If the job id is unknown
            NotCompletedError: If the job is not completed (yet)
        """
        async with await self._uow_factory() as uow:
            generation = await uow.generations.get_by_job_id(job_id)
        if generation is None:
            raise JobNotFound(job_id)
        if generation.status != GenerationStatus.COMPLETED or not generation.image_url:
            raise NotCompletedError(job_id, generation.status.value)

        return GenerationResultView(
            job_id=generation.job_id,
            image_url=generation.image_url,
            status=generation.status,
        )

    async def list_history(self, user_id: int, limit: int = 20, offset: int = 0) -> list[Generation]:
        async with await self._uow_factory() as uow:
            return await uow.generations.list_by_user(user_id, limit=limit, offset=offset)

    async def generate_sync(
        self, user_id: int, template_id: int, image_bytes: bytes | None
    ) -> SyncGenerationResult:
        """Run the whole generation inline.

        Order: validate image → content safety → balance check → provider →
        debit + ledger entry (one transaction).

        Raises:
            ValidationError: Missing or oversized image
            SafetyError: Content rejected
            UserNotFound / TemplateNotFound: Unknown ids
            InsufficientCreditsError: Balance below the template cost
            GenerationFailed: Provider error, timeout or empty result
            StorageError: Debit could not be recorded after a successful generation
        """
        image_bytes = self.validate_image(image_bytes)
        await self.check_content_safety(image_bytes)

        async with await self._uow_factory() as uow:
            template = await uow.templates.get_by_id(template_id)
            if template is None:
                raise TemplateNotFound(template_id)
            await credits.ensure_balance(uow, user_id, template.credit_cost)

        image_urls = await call_provider(
            self._provider, template_id, image_bytes, self._generation_timeout
        )

        try:
            async with await self._uow_factory() as uow:
                await credits.debit_for_generation(uow, user_id, template)
        except UserNotFound:
            raise
        except Exception as e:
            logger.error(
                "generation.sync.charge_failed",
                user_id=user_id,
                template_id=template_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageError(f"failed to record credit debit: {e}") from e

        logger.info(
            "generation.sync.completed",
            user_id=user_id,
            template_id=template_id,
            credits_used=template.credit_cost,
            image_count=len(image_urls),
        )
        return SyncGenerationResult(images=image_urls, credits_used=template.credit_cost)
