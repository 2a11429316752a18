"""Generation repository for the generation pipeline.

Provides data access methods for Generation entities (the job status store).
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fortyfive.core.timezone import utcnow
from fortyfive.models.generation import Generation, GenerationStatus
from fortyfive.services.exceptions import JobNotFound, StorageError


class GenerationRepository:
    """Repository for Generation entities.

    Status writes are permissive: progress may move backward and a record may
    re-enter processing. Only started_at and the terminal error status are
    guarded.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def create(self, generation: Generation) -> Generation:
        """Persist a new generation as pending with zero progress.

        Args:
            generation: Generation entity to persist (status/progress are reset)

        Returns:
            Persisted generation with generated ID

        Raises:
            StorageError: If the insert violates a constraint (duplicate job_id)
        """
        generation.status = GenerationStatus.PENDING
        generation.progress = 0
        self.session.add(generation)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise StorageError(f"failed to create generation {generation.job_id}: {e.orig}") from e
        return generation

    async def get_by_job_id(self, job_id: str) -> Generation | None:
        """Retrieve generation by its external job id.

        Args:
            job_id: 32-character hex job identifier

        Returns:
            Generation if found, None otherwise
        """
        result = await self.session.execute(
            select(Generation).where(Generation.job_id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def _require(self, job_id: str) -> Generation:
        generation = await self.get_by_job_id(job_id)
        if generation is None:
            raise JobNotFound(job_id)
        return generation

    async def update_status(self, job_id: str, status: GenerationStatus, progress: int) -> Generation:
        """Set status and progress.

        started_at is stamped the first time the record enters processing and
        never overwritten afterwards. Calling this repeatedly with the same
        values is harmless.

        Raises:
            JobNotFound: If no generation exists for job_id
        """
        generation = await self._require(job_id)
        now = utcnow()
        generation.status = status
        generation.progress = progress
        generation.updated_at = now
        if status == GenerationStatus.PROCESSING and generation.started_at is None:
            generation.started_at = now
        await self.session.flush()
        return generation

    async def update_with_result(
        self,
        job_id: str,
        status: GenerationStatus,
        image_url: str,
        completed_at: datetime,
    ) -> Generation:
        """Terminal success write: store the result URL and mark progress 100.

        Raises:
            JobNotFound: If no generation exists for job_id
        """
        generation = await self._require(job_id)
        generation.status = status
        generation.image_url = image_url
        generation.progress = 100
        generation.completed_at = completed_at
        generation.updated_at = utcnow()
        await self.session.flush()
        return generation

    async def update_with_error(
        self, job_id: str, error_message: str, completed_at: datetime
    ) -> Generation:
        """Terminal failure write. Status is always forced to failed.

        Raises:
            JobNotFound: If no generation exists for job_id
        """
        generation = await self._require(job_id)
        generation.status = GenerationStatus.FAILED
        generation.error = error_message
        generation.completed_at = completed_at
        generation.updated_at = utcnow()
        await self.session.flush()
        return generation

    async def list_by_user(self, user_id: int, limit: int = 20, offset: int = 0) -> list[Generation]:
        """Retrieve a user's generations for history views.

        Returns:
            Generations ordered by creation date (newest first)
        """
        result = await self.session.execute(
            select(Generation)
            .where(Generation.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Generation.created_at.desc(), Generation.id.desc())  # type: ignore[attr-defined, union-attr]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def fail_unfinished(self, error_message: str) -> int:
        """Mark every pending or processing generation as failed.

        Used on startup: jobs are held in memory only, so rows left unfinished
        by a previous process can never be picked up again.

        Query:
            UPDATE generations
            SET status = 'failed', error = :error, completed_at = now
            WHERE status IN ('pending', 'processing')

        Returns:
            Number of generations marked failed
        """
        now = utcnow()
        result = await self.session.execute(
            update(Generation)
            .where(
                Generation.status.in_(  # type: ignore[attr-defined]
                    [GenerationStatus.PENDING, GenerationStatus.PROCESSING]
                )
            )
            .values(
                status=GenerationStatus.FAILED,
                error=error_message,
                completed_at=now,
                updated_at=now,
            )
        )
        return result.rowcount  # type: ignore[attr-defined]
