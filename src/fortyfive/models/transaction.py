"""Transaction entity - Append-only credit ledger entry."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from fortyfive.core.timezone import utcnow


class TransactionType(str, Enum):
    """Kind of balance change recorded in the ledger."""

    PURCHASE = "purchase"
    GENERATION = "generation"


class Transaction(SQLModel, table=True):
    """Transaction records one signed change to a user's credit balance.

    Debits carry a negative amount. Rows are never updated or deleted.
    """

    __tablename__ = "transactions"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    type: TransactionType
    amount: int
    description: str = Field(default="")
    external_payment_id: Optional[str] = Field(default=None, max_length=255)
    related_template_id: Optional[int] = Field(default=None)
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
