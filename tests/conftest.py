"""Shared test fixtures.

Every test gets its own in-memory SQLite database built from the ORM metadata,
so tests are isolated without truncating tables.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.config import Settings
from parkrank.database import Database
from parkrank.db.models import Park, User
from parkrank.gamification.seed import seed_all
from parkrank.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        redis_url="",
        log_format="console",
        calendar_timezone="UTC",
        vote_max_attempts=3,
    )


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Fresh schema per test."""
    db = Database(TEST_DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_session(db_session: AsyncSession) -> AsyncSession:
    """Session with achievement and challenge definitions seeded."""
    await seed_all(db_session)
    return db_session


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def _make(name: str = "voter") -> User:
        user = User(name=name)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_park(db_session: AsyncSession) -> Callable[..., Awaitable[Park]]:
    counter = {"n": 0}

    async def _make(name: str | None = None, rating: float = 1500.0) -> Park:
        counter["n"] += 1
        park = Park(
            name=name or f"Park {counter['n']}",
            location="Somewhere, USA",
            rating=rating,
            vote_count=0,
        )
        db_session.add(park)
        await db_session.commit()
        return park

    return _make


@pytest_asyncio.fixture
async def client(database: Database, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against an app bound to the per-test database."""
    app = create_app(settings=settings, database=database)
    async with database.session() as session:
        await seed_all(session)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
