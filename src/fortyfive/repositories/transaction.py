"""Transaction repository.

Append-only access to the credit ledger.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fortyfive.models.transaction import Transaction, TransactionType


class TransactionRepository:
    """Repository for Transaction entities.

    Exposes no update or delete: ledger entries are immutable.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def append(
        self,
        user_id: int,
        type: TransactionType,
        amount: int,
        description: str,
        related_template_id: int | None = None,
        external_payment_id: str | None = None,
    ) -> Transaction:
        """Append a ledger entry.

        Args:
            user_id: Owner of the balance that changed
            type: purchase or generation
            amount: Signed change (debits are negative)
            description: Human-readable reason shown in history
            related_template_id: Template used, for generation entries
            external_payment_id: Payment provider reference, for purchases

        Returns:
            Persisted transaction with generated ID
        """
        transaction = Transaction(
            user_id=user_id,
            type=type,
            amount=amount,
            description=description,
            related_template_id=related_template_id,
            external_payment_id=external_payment_id,
        )
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def list_by_user(self, user_id: int, limit: int = 10, offset: int = 0) -> list[Transaction]:
        """Retrieve a user's ledger entries, newest first."""
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())  # type: ignore[attr-defined, union-attr]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_by_user(self, user_id: int) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Transaction).where(Transaction.user_id == user_id)  # type: ignore[arg-type]
        )
        return int(result.scalar_one())
