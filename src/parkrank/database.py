"""Async SQLAlchemy engine and session management.

A single ``Database`` is built at process start (API lifespan, worker startup)
and handed to whatever needs sessions. Nothing here is cached at module level.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from parkrank.config import Settings
from parkrank.db.base import Base


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options per dialect. In-memory SQLite must share one connection."""
    if url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.endswith("://"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "connect_args": {"statement_cache_size": 0},
    }


class Database:
    """Owns the async engine and the session factory."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **_engine_options(url))
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(settings.database_url, echo=settings.debug)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session that is closed on exit."""
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create every table from the ORM metadata (tests and local dev)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        """Dispose of the engine and its pool."""
        await self.engine.dispose()
