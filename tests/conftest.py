"""pytest fixtures for fortyfive backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- session_factory: Function-scoped session factory over a fresh SQLite file database
- uow_factory: Function-scoped UnitOfWork factory
- user / template: Seeded rows (50 credits, "Ghibli" costing 20)
- FakeImageProvider: Scriptable image provider used instead of a real backend
"""

import asyncio
import os
from typing import AsyncGenerator

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("IMAGE_PROVIDER", "mock")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from fortyfive.core.database import create_tables, dispose, setup_db_session  # noqa: E402
from fortyfive.models.template import Template  # noqa: E402
from fortyfive.models.user import User  # noqa: E402
from fortyfive.uow import create_uow_factory  # noqa: E402


class FakeImageProvider:
    """Image provider returning canned results.

    Args:
        urls: URLs returned by every call
        error: Exception raised instead of returning urls
        gate: If set, every call waits for this event before returning
    """

    def __init__(
        self,
        urls: list[str] | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.urls = ["url1"] if urls is None else urls
        self.error = error
        self.gate = gate
        self.calls: list[int] = []

    async def generate(self, template_id: int, image_bytes: bytes) -> list[str]:
        self.calls.append(template_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.urls)


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Provide a session factory bound to an empty SQLite database.

    Each test gets its own database file, so no truncation is needed. A file
    (not :memory:) is used so concurrent sessions see each other's commits.
    """
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    factory = setup_db_session(db_url)
    await create_tables(factory)

    yield factory

    await dispose(factory)


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture
async def user(uow_factory) -> User:
    """User with a 50 credit balance."""
    async with await uow_factory() as uow:
        return await uow.users.add(
            User(wechat_openid="openid-test-user", nickname="Tester", credits=50)
        )


@pytest_asyncio.fixture
async def template(uow_factory) -> Template:
    """Active template costing 20 credits."""
    async with await uow_factory() as uow:
        return await uow.templates.add(
            Template(name="Ghibli", description="Anime style", credit_cost=20)
        )


async def get_credits(uow_factory, user_id: int) -> int:
    """Read a user's balance in a fresh UnitOfWork."""
    async with await uow_factory() as uow:
        user = await uow.users.get_by_id(user_id)
        assert user is not None
        return user.credits
