"""Seed data for achievement and challenge definitions.

Seeding is an upsert keyed on ``code``, so it runs on every startup. Challenge
windows are recomputed each time, which is how monthly and seasonal
challenges roll over.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import AchievementDefinition, ChallengeDefinition
from parkrank.gamification.achievement_service import ACHIEVEMENT_DEFINITIONS
from parkrank.gamification.challenge_service import CHALLENGE_DEFINITIONS, challenge_window

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    """ON CONFLICT-capable insert for the session's dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def seed_achievements(db: AsyncSession) -> int:
    """Upsert all achievement definitions. Returns number seeded."""
    insert = _insert_for(db)
    seeded = 0
    for achievement_data in ACHIEVEMENT_DEFINITIONS:
        stmt = insert(AchievementDefinition).values(**achievement_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["code"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "color": stmt.excluded.color,
                "category": stmt.excluded.category,
                "target_value": stmt.excluded.target_value,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievement definitions", seeded)
    return seeded


async def seed_challenges(
    db: AsyncSession, now: datetime | None = None, tz: tzinfo = timezone.utc
) -> int:
    """Upsert all challenge definitions with windows computed for ``now``."""
    insert = _insert_for(db)
    seeded = 0
    for challenge_data in CHALLENGE_DEFINITIONS:
        start_date, end_date = challenge_window(challenge_data, now, tz)
        values = {k: v for k, v in challenge_data.items() if k != "season"}
        stmt = insert(ChallengeDefinition).values(
            **values, start_date=start_date, end_date=end_date, is_active=True
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["code"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "color": stmt.excluded.color,
                "type": stmt.excluded.type,
                "target_value": stmt.excluded.target_value,
                "start_date": stmt.excluded.start_date,
                "end_date": stmt.excluded.end_date,
                "is_active": stmt.excluded.is_active,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d challenge definitions", seeded)
    return seeded


async def seed_all(db: AsyncSession, now: datetime | None = None, tz: tzinfo = timezone.utc) -> None:
    await seed_achievements(db)
    await seed_challenges(db, now, tz)
