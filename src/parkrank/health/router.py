"""Liveness, readiness and version endpoints."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.competition.scheduler import JOB_NAME
from parkrank.config import Settings
from parkrank.db.models import SchedulerState
from parkrank.dependencies import get_app_settings, get_db, get_redis
from parkrank.utils import ensure_utc

router = APIRouter()

HEALTHY = ("ok", "disabled")


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


async def _check_redis(redis: Any | None) -> str:
    if redis is None:
        return "disabled"
    try:
        await redis.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"


async def _next_weekly_rotation(db: AsyncSession) -> str | None:
    try:
        next_fire_at = (await db.execute(
            select(SchedulerState.next_fire_at).where(SchedulerState.name == JOB_NAME)
        )).scalar_one_or_none()
    except Exception:
        return None
    return ensure_utc(next_fire_at).isoformat() if next_fire_at is not None else None


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process is up."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: Any | None = Depends(get_redis),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: database, Redis push (if configured) and the weekly timer."""
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(redis),
    }
    ready = all(v in HEALTHY for v in checks.values())
    return {
        "status": "ready" if ready else "degraded",
        "checks": checks,
        "next_weekly_rotation": await _next_weekly_rotation(db),
    }


@router.get("/version")
async def version(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:  # noqa: B008
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "calendar_timezone": settings.calendar_timezone,
    }
