"""FastAPI identity dependencies.

Authentication happens upstream; the gateway forwards the authenticated user
id in ``X-User-Id``. A missing header means an anonymous caller.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import User
from parkrank.dependencies import get_db


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_optional_user(
    x_user_id: int | None = Header(default=None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """The forwarded user, or None for anonymous requests. 401 for unknown ids."""
    if x_user_id is None:
        return None
    user = await get_user_by_id(db, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    """Require an identified user. Raises 401 for anonymous requests."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
