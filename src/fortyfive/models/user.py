"""User entity - Mini-program account holding a prepaid credit balance."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from fortyfive.core.timezone import utcnow


class User(SQLModel, table=True):
    """User represents an account identified by its WeChat OpenID."""

    __tablename__ = "users"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    wechat_openid: str = Field(max_length=128, unique=True, index=True)
    nickname: str = Field(default="", max_length=255)
    avatar_url: str = Field(default="")
    # Only changed through additive adjustments (UserRepository.adjust_credits)
    credits: int = Field(default=0)
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
    updated_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
