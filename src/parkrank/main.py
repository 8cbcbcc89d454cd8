"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from parkrank.competition.router import router as competition_router
from parkrank.competition.scheduler import WeeklyScheduler
from parkrank.config import Settings, get_settings
from parkrank.database import Database
from parkrank.gamification.router import router as gamification_router
from parkrank.gamification.seed import seed_all
from parkrank.health.router import router as health_router
from parkrank.middleware import setup_middleware
from parkrank.redis_client import close_redis, create_redis
from parkrank.referral.router import router as referral_router
from parkrank.social.router import router as social_router
from parkrank.utils import get_calendar_tz
from parkrank.voting.router import router as voting_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings: Settings = app.state.settings
    owns_database = getattr(app.state, "db", None) is None
    if owns_database:
        app.state.db = Database.from_settings(settings)
    database: Database = app.state.db
    app.state.redis = create_redis(settings.redis_url)

    # Seed achievement and challenge definitions (idempotent)
    try:
        async with database.session() as db:
            await seed_all(db, tz=get_calendar_tz(settings.calendar_timezone))
    except Exception:
        logger.warning("Seeding failed (tables may not exist yet)", exc_info=True)

    stop_event = asyncio.Event()
    scheduler_task: asyncio.Task | None = None
    if settings.run_scheduler_in_process:
        scheduler = WeeklyScheduler(database, settings, redis=app.state.redis)
        scheduler_task = asyncio.create_task(scheduler.run_forever(stop_event))

    yield

    stop_event.set()
    if scheduler_task is not None:
        try:
            await asyncio.wait_for(scheduler_task, timeout=5)
        except asyncio.TimeoutError:
            scheduler_task.cancel()

    await close_redis(app.state.redis)
    if owns_database:
        await database.dispose()


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``database`` lets callers (tests, embedding processes) supply their own
    engine; otherwise one is built from settings at startup.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="ParkRank API",
        description="Pairwise park voting with Elo rankings, streaks, achievements and weekly competitions",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database
    app.state.redis = None

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(voting_router)
    app.include_router(gamification_router)
    app.include_router(competition_router)
    app.include_router(social_router)
    app.include_router(referral_router)

    return app


app = create_app()
