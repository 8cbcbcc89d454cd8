"""Monthly and seasonal challenges: window math, progress tracking, milestones.

Progress is a counter incremented in SQL, never read-modify-written in Python,
and is kept per occurrence: a row is keyed on the challenge start_date it was
counted against, so last month's votes never count toward this month.
completed_at is written by a conditional UPDATE so it is set exactly once even
though progress keeps accumulating after the target is reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import ChallengeDefinition, UserChallengeProgress
from parkrank.errors import NotFoundError, degrade_on_unavailable
from parkrank.utils import ensure_utc, round_half_up

logger = logging.getLogger(__name__)

CHALLENGE_DEFINITIONS: list[dict] = [
    # --- Monthly ---
    {
        "code": "monthly_votes_25",
        "name": "Vote Machine",
        "description": "Cast 25 votes this month",
        "icon": "Zap",
        "color": "yellow",
        "type": "monthly",
        "target_value": 25,
    },
    {
        "code": "monthly_votes_50",
        "name": "Park Enthusiast",
        "description": "Cast 50 votes this month",
        "icon": "Flame",
        "color": "orange",
        "type": "monthly",
        "target_value": 50,
    },
    {
        "code": "monthly_votes_100",
        "name": "Monthly Marathon",
        "description": "Cast 100 votes this month",
        "icon": "Rocket",
        "color": "purple",
        "type": "monthly",
        "target_value": 100,
    },
    # --- Seasonal (meteorological seasons) ---
    {
        "code": "seasonal_spring",
        "name": "Spring Bloom",
        "description": "Cast 150 votes during spring",
        "icon": "Flower",
        "color": "green",
        "type": "seasonal",
        "target_value": 150,
        "season": "spring",
    },
    {
        "code": "seasonal_summer",
        "name": "Summer Explorer",
        "description": "Cast 150 votes during summer",
        "icon": "Sun",
        "color": "yellow",
        "type": "seasonal",
        "target_value": 150,
        "season": "summer",
    },
    {
        "code": "seasonal_autumn",
        "name": "Autumn Trails",
        "description": "Cast 150 votes during autumn",
        "icon": "Leaf",
        "color": "orange",
        "type": "seasonal",
        "target_value": 150,
        "season": "autumn",
    },
    {
        "code": "seasonal_winter",
        "name": "Winter Wanderer",
        "description": "Cast 150 votes during winter",
        "icon": "Snowflake",
        "color": "cyan",
        "type": "seasonal",
        "target_value": 150,
        "season": "winter",
    },
]

# season -> first month; each season lasts three months
SEASON_START_MONTH = {"spring": 3, "summer": 6, "autumn": 9, "winter": 12}

COMPLETION_ICON = "\U0001f3c6"  # trophy
NEARLY_DONE_ICON = "\U0001f525"  # fire
ALMOST_THERE_ICON = "\u26a1"  # zap


@dataclass
class ChallengeNotification:
    type: str  # "milestone" | "completion"
    challenge_name: str
    challenge_code: str
    message: str
    percentage: int
    icon: str


def _add_months(d: date, months: int) -> date:
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def _window(first_day: date, months: int, tz: tzinfo) -> tuple[datetime, datetime]:
    """[first_day 00:00, last instant before first_day + months) in tz, as UTC."""
    start = datetime.combine(first_day, time.min, tzinfo=tz)
    end = datetime.combine(_add_months(first_day, months), time.min, tzinfo=tz) - timedelta(seconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def challenge_window(
    definition: dict, now: datetime | None = None, tz: tzinfo = timezone.utc
) -> tuple[datetime, datetime]:
    """Start and end of the challenge's current (or next upcoming) occurrence.

    Monthly challenges cover the calendar month containing ``now``. Seasonal
    challenges cover the occurrence of their season that has not ended yet,
    so winter in January starts the previous December.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    local_date = ensure_utc(now).astimezone(tz).date()

    if definition["type"] == "monthly":
        return _window(local_date.replace(day=1), 1, tz)

    start_month = SEASON_START_MONTH[definition["season"]]
    first_day = date(local_date.year, start_month, 1)
    if start_month == 12 and local_date.month < 3:
        first_day = date(local_date.year - 1, 12, 1)
    if local_date >= _add_months(first_day, 3):
        first_day = date(first_day.year + 1, start_month, 1)
    return _window(first_day, 3, tz)


def classify_progress(
    progress: int, target: int, challenge_name: str, challenge_code: str
) -> ChallengeNotification | None:
    """Completion at 100%, milestones at 90% and 75%, nothing below."""
    if target <= 0:
        return None
    percentage = round_half_up(progress / target * 100)

    if percentage >= 100:
        return ChallengeNotification(
            type="completion",
            challenge_name=challenge_name,
            challenge_code=challenge_code,
            message=f"\U0001f389 Challenge Completed! You finished {challenge_name}!",
            percentage=100,
            icon=COMPLETION_ICON,
        )
    if percentage >= 90:
        return ChallengeNotification(
            type="milestone",
            challenge_name=challenge_name,
            challenge_code=challenge_code,
            message=f"Nearly done! You're {percentage}% of the way through {challenge_name}.",
            percentage=percentage,
            icon=NEARLY_DONE_ICON,
        )
    if percentage >= 75:
        return ChallengeNotification(
            type="milestone",
            challenge_name=challenge_name,
            challenge_code=challenge_code,
            message=f"Almost there! You're {percentage}% of the way through {challenge_name}.",
            percentage=percentage,
            icon=ALMOST_THERE_ICON,
        )
    return None


async def get_challenge_by_id(db: AsyncSession, challenge_id: int) -> ChallengeDefinition | None:
    result = await db.execute(
        select(ChallengeDefinition).where(ChallengeDefinition.id == challenge_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@degrade_on_unavailable(default=list)
async def get_active_challenges(
    db: AsyncSession, now: datetime | None = None
) -> list[ChallengeDefinition]:
    """Active challenges whose window contains ``now``."""
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        select(ChallengeDefinition)
        .where(
            ChallengeDefinition.is_active.is_(True),
            ChallengeDefinition.start_date <= now,
            ChallengeDefinition.end_date >= now,
        )
        .order_by(ChallengeDefinition.id.asc())
    )
    return list(result.scalars().all())


async def _increment_progress(
    db: AsyncSession,
    user_id: int,
    challenge_id: int,
    period_start: datetime,
    increment: int,
    now: datetime,
) -> int:
    result = await db.execute(
        update(UserChallengeProgress)
        .where(
            UserChallengeProgress.user_id == user_id,
            UserChallengeProgress.challenge_id == challenge_id,
            UserChallengeProgress.period_start == period_start,
        )
        .values(progress=UserChallengeProgress.progress + increment, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


@degrade_on_unavailable(default=lambda: False)
async def update_challenge_progress(
    db: AsyncSession, user_id: int, challenge_id: int, increment: int
) -> bool:
    """Add ``increment`` to the user's progress in the challenge's current period.

    Raises NotFoundError if the challenge does not exist. Returns False if the
    store is unavailable.
    """
    challenge = await get_challenge_by_id(db, challenge_id)
    if challenge is None:
        raise NotFoundError(f"Challenge {challenge_id} not found")
    # A rollback below expires ``challenge``; keep plain values.
    code, target, period_start = challenge.code, challenge.target_value, challenge.start_date

    now = datetime.now(timezone.utc)
    if await _increment_progress(db, user_id, challenge_id, period_start, increment, now) == 0:
        db.add(UserChallengeProgress(
            user_id=user_id,
            challenge_id=challenge_id,
            period_start=period_start,
            progress=increment,
            is_completed=False,
            updated_at=now,
        ))
        try:
            await db.flush()
        except IntegrityError:
            # Another request created the row first; add to it instead.
            await db.rollback()
            await _increment_progress(db, user_id, challenge_id, period_start, increment, now)

    completed = await db.execute(
        update(UserChallengeProgress)
        .where(
            UserChallengeProgress.user_id == user_id,
            UserChallengeProgress.challenge_id == challenge_id,
            UserChallengeProgress.period_start == period_start,
            UserChallengeProgress.progress >= target,
            UserChallengeProgress.completed_at.is_(None),
        )
        .values(is_completed=True, completed_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if completed.rowcount:
        logger.info("User %d completed challenge %s", user_id, code)
    return True


def _current_period_progress():
    """Progress rows belonging to their challenge's current occurrence."""
    return (
        select(UserChallengeProgress)
        .join(ChallengeDefinition, ChallengeDefinition.id == UserChallengeProgress.challenge_id)
        .where(UserChallengeProgress.period_start == ChallengeDefinition.start_date)
        .execution_options(populate_existing=True)
    )


@degrade_on_unavailable(default=list)
async def get_user_challenge_progress(db: AsyncSession, user_id: int) -> list[UserChallengeProgress]:
    """The user's progress in each challenge's current period, with the challenge loaded."""
    result = await db.execute(
        _current_period_progress()
        .where(UserChallengeProgress.user_id == user_id)
        .order_by(UserChallengeProgress.challenge_id.asc())
    )
    return list(result.unique().scalars().all())


async def get_completed_challenges(db: AsyncSession, user_id: int) -> list[UserChallengeProgress]:
    return [p for p in await get_user_challenge_progress(db, user_id) if p.is_completed]


@degrade_on_unavailable(default=list)
async def get_challenge_notifications(
    db: AsyncSession, user_id: int, challenge_id: int
) -> list[ChallengeNotification]:
    """At most one notification describing where the user stands on a challenge this period."""
    result = await db.execute(
        _current_period_progress().where(
            UserChallengeProgress.user_id == user_id,
            UserChallengeProgress.challenge_id == challenge_id,
        )
    )
    row = result.unique().scalar_one_or_none()
    if row is None:
        return []
    notification = classify_progress(
        row.progress, row.challenge.target_value, row.challenge.name, row.challenge.code
    )
    return [notification] if notification is not None else []


async def get_all_challenge_notifications(db: AsyncSession, user_id: int) -> list[ChallengeNotification]:
    notifications: list[ChallengeNotification] = []
    for row in await get_user_challenge_progress(db, user_id):
        notification = classify_progress(
            row.progress, row.challenge.target_value, row.challenge.name, row.challenge.code
        )
        if notification is not None:
            notifications.append(notification)
    return notifications


async def increment_vote_challenges(
    db: AsyncSession, user_id: int, now: datetime | None = None
) -> int:
    """Count one vote toward every active challenge. Returns how many were updated."""
    updated = 0
    for challenge in await get_active_challenges(db, now):
        if await update_challenge_progress(db, user_id, challenge.id, 1):
            updated += 1
    return updated
