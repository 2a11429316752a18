"""User repository.

Provides data access methods for User entities and their credit balance.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fortyfive.core.timezone import utcnow
from fortyfive.models.user import User
from fortyfive.services.exceptions import UserNotFound


class UserRepository:
    """Repository for User entities.

    Credit changes are additive UPDATEs (credits = credits + delta), never
    read-modify-write, so concurrent adjustments cannot lose each other.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, user: User) -> User:
        """Persist new user to database.

        Returns:
            Persisted user with generated ID
        """
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> User | None:
        """Retrieve user by ID.

        Returns:
            User if found, None otherwise
        """
        result = await self.session.execute(
            select(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_openid(self, wechat_openid: str) -> User | None:
        """Retrieve user by WeChat OpenID.

        Returns:
            User if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(User.wechat_openid == wechat_openid)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def adjust_credits(self, user_id: int, delta: int) -> None:
        """Add delta (negative for a debit) to the user's balance.

        Query:
            UPDATE users SET credits = credits + :delta WHERE id = :user_id

        Raises:
            UserNotFound: If no user row was updated
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .values(credits=User.credits + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise UserNotFound(user_id)
