"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.config import Settings
from parkrank.database import Database


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the app's Database; closed after the response."""
    database: Database = request.app.state.db
    async with database.session() as session:
        yield session


def get_redis(request: Request) -> Any | None:
    """The app's Redis client, or None when push is disabled."""
    return getattr(request.app.state, "redis", None)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
