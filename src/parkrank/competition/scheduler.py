"""Weekly rotation timer driven by a persisted next-fire-at.

Each tick reads ``scheduler_state.next_fire_at``. When it is due, the tick
claims the firing by moving next_fire_at forward with a compare-and-swap and
only the winner of that swap rotates. Missed weeks (process down over a
boundary) collapse into a single rotation. If the rotation fails the claim is
handed back so the next tick retries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from parkrank.competition.weekly_service import rotate_weekly_challenge
from parkrank.config import Settings, get_settings
from parkrank.database import Database
from parkrank.db.models import SchedulerState, WeeklyCompetitionWindow
from parkrank.errors import UNAVAILABLE_ERRORS
from parkrank.utils import ensure_utc, get_calendar_tz, get_next_week_boundary

logger = logging.getLogger(__name__)

JOB_NAME = "weekly_rotation"


class WeeklyScheduler:
    """Fires ``rotate_weekly_challenge`` at each week boundary."""

    def __init__(self, database: Database, settings: Settings | None = None, redis: Any | None = None) -> None:
        self.database = database
        self.settings = settings or get_settings()
        self.redis = redis
        self.tz = get_calendar_tz(self.settings.calendar_timezone)

    async def _claim(self, now: datetime) -> datetime | None:
        """Advance next_fire_at if due. Returns the claimed fire time, or None."""
        async with self.database.session() as db:
            state = (await db.execute(
                select(SchedulerState).where(SchedulerState.name == JOB_NAME)
            )).scalar_one_or_none()

            if state is None:
                db.add(SchedulerState(
                    name=JOB_NAME,
                    next_fire_at=get_next_week_boundary(self.tz, now),
                ))
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                return None

            due_at = ensure_utc(state.next_fire_at)
            if due_at > now:
                return None

            result = await db.execute(
                update(SchedulerState)
                .where(SchedulerState.name == JOB_NAME, SchedulerState.next_fire_at == state.next_fire_at)
                .values(next_fire_at=get_next_week_boundary(self.tz, now), last_fired_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            if result.rowcount != 1:
                logger.info("Weekly rotation due at %s claimed by another worker", due_at)
                return None
            if now - due_at > timedelta(seconds=self.settings.scheduler_tick_seconds * 2):
                logger.warning("Weekly rotation was due at %s, firing late at %s", due_at, now)
            return due_at

    async def _release(self, due_at: datetime, now: datetime) -> None:
        """Give a failed claim back so the next tick fires again."""
        async with self.database.session() as db:
            await db.execute(
                update(SchedulerState)
                .where(
                    SchedulerState.name == JOB_NAME,
                    SchedulerState.next_fire_at == get_next_week_boundary(self.tz, now),
                )
                .values(next_fire_at=due_at)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    async def tick(self, now: datetime | None = None) -> WeeklyCompetitionWindow | None:
        """Run one scheduler check. Returns the new window if a rotation happened."""
        if now is None:
            now = datetime.now(timezone.utc)
        now = ensure_utc(now)

        due_at = await self._claim(now)
        if due_at is None:
            return None

        try:
            async with self.database.session() as db:
                window = await rotate_weekly_challenge(db, now=now, redis=self.redis, tz=self.tz)
        except UNAVAILABLE_ERRORS:
            logger.warning("Weekly rotation failed, releasing claim", exc_info=True)
            try:
                await self._release(due_at, now)
            except UNAVAILABLE_ERRORS:
                logger.error("Could not release weekly rotation claim due at %s", due_at)
            return None

        logger.info("Next weekly rotation at %s", get_next_week_boundary(self.tz, now))
        return window

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Tick every ``scheduler_tick_seconds`` until ``stop_event`` is set."""
        if stop_event is None:
            stop_event = asyncio.Event()
        interval = self.settings.scheduler_tick_seconds
        logger.info("Weekly scheduler started (tick every %ds)", interval)

        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Weekly scheduler tick failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Weekly scheduler stopped")
