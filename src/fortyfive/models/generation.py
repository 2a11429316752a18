"""Generation entity - One row per submitted image-generation job."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from fortyfive.core.timezone import utcnow


class GenerationStatus(str, Enum):
    """Generation lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


class Generation(SQLModel, table=True):
    """Generation is the durable record of a queued generation job.

    Created as pending by the submission path and afterwards mutated only by
    the worker that dequeued the matching in-memory job.
    """

    __tablename__ = "generations"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    job_id: str = Field(max_length=64, unique=True, index=True)
    user_id: int = Field(index=True)
    template_id: int
    status: GenerationStatus = Field(default=GenerationStatus.PENDING, index=True)
    progress: int = Field(default=0, ge=0, le=100)
    image_url: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)
    started_at: Optional[datetime] = Field(  # type: ignore[call-overload]
        default=None, sa_type=DateTime(timezone=True)
    )
    completed_at: Optional[datetime] = Field(  # type: ignore[call-overload]
        default=None, sa_type=DateTime(timezone=True)
    )
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
