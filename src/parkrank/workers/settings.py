"""arq worker: weekly rotation tick and challenge window refresh.

Import path for arq CLI: arq parkrank.workers.settings.WorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from parkrank.competition.scheduler import WeeklyScheduler
from parkrank.config import get_settings
from parkrank.database import Database
from parkrank.gamification.seed import seed_challenges
from parkrank.redis_client import close_redis, create_redis
from parkrank.utils import get_calendar_tz

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis on worker startup."""
    settings = get_settings()
    database = Database.from_settings(settings)
    redis_client = create_redis(settings.redis_url)

    ctx["database"] = database
    ctx["redis_client"] = redis_client
    ctx["scheduler"] = WeeklyScheduler(database, settings, redis=redis_client)
    logger.info("Scheduler worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_redis(ctx.get("redis_client"))
    database: Database | None = ctx.get("database")
    if database is not None:
        await database.dispose()
    logger.info("Scheduler worker shut down")


async def weekly_rotation_tick(ctx: dict) -> None:  # type: ignore[type-arg]
    """Cron task: check whether the weekly rotation is due."""
    scheduler: WeeklyScheduler = ctx["scheduler"]
    try:
        window = await scheduler.tick()
        if window is not None:
            logger.info("Weekly rotation opened window %d", window.id)
    except Exception:
        logger.exception("Weekly rotation tick failed")


async def refresh_challenge_windows(ctx: dict) -> None:  # type: ignore[type-arg]
    """Cron task: roll monthly and seasonal challenge windows forward."""
    database: Database = ctx["database"]
    tz = get_calendar_tz(get_settings().calendar_timezone)
    try:
        async with database.session() as db:
            await seed_challenges(db, tz=tz)
    except Exception:
        logger.exception("Failed to refresh challenge windows")


class WorkerSettings:
    """arq worker settings for the weekly competition scheduler."""

    functions = [weekly_rotation_tick, refresh_challenge_windows]
    cron_jobs = [
        cron(weekly_rotation_tick, second=0),  # every minute
        cron(refresh_challenge_windows, minute=1, second=30),  # hourly
    ]
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 2
    job_timeout = 300
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url or "redis://localhost:6379")
