"""Template entity - Catalog entry defining a generation style and its credit cost."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from fortyfive.core.timezone import utcnow


class Template(SQLModel, table=True):
    """Template is a static style preset; credit_cost sizes the generation debit."""

    __tablename__ = "templates"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100, unique=True, index=True)
    description: str = Field(default="")
    preview_image_url: str = Field(default="")
    credit_cost: int = Field(ge=0)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
