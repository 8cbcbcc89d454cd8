"""Daily voting streaks: one state machine per user, advanced once per vote."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import Streak, User
from parkrank.errors import degrade_on_unavailable
from parkrank.utils import get_configured_tz, local_today

logger = logging.getLogger(__name__)

# --- Streak milestone thresholds ---
STREAK_MILESTONES: dict[int, str] = {
    3: "\U0001f525",  # fire
    7: "\u2b50",  # star
    14: "\U0001f48e",  # gem
    30: "\U0001f451",  # crown
}


@dataclass
class StreakNotification:
    type: str
    streak_days: int
    icon: str
    message: str


def today_for_streaks(now: datetime | None = None) -> date:
    """Calendar date used for streak comparisons."""
    return local_today(get_configured_tz(), now)


def build_milestone_notification(streak_days: int) -> StreakNotification | None:
    """Milestone payload for 3/7/14/30-day streaks, None otherwise."""
    icon = STREAK_MILESTONES.get(streak_days)
    if icon is None:
        return None
    return StreakNotification(
        type="streak_milestone",
        streak_days=streak_days,
        icon=icon,
        message=f"{icon} {streak_days}-day voting streak! Keep it going!",
    )


async def get_user_streak(db: AsyncSession, user_id: int) -> Streak | None:
    """Fetch a user's streak row."""
    result = await db.execute(select(Streak).where(Streak.user_id == user_id))
    return result.scalar_one_or_none()


@degrade_on_unavailable(default=lambda: None)
async def update_voting_streak(
    db: AsyncSession,
    user_id: int,
    today: date | None = None,
) -> StreakNotification | None:
    """Advance the user's streak for a vote cast ``today``.

    - first ever vote: create at 1, no milestone
    - same day: no change
    - next day: +1, longest = max(longest, current)
    - gap: reset to 1 and restart the streak
    Returns a milestone notification when the new streak hits 3, 7, 14 or 30.
    """
    if today is None:
        today = today_for_streaks()
    now = datetime.now(timezone.utc)

    streak = await get_user_streak(db, user_id)
    if streak is None:
        db.add(Streak(
            user_id=user_id,
            current_streak=1,
            longest_streak=1,
            last_vote_date=today,
            streak_start_date=today,
            updated_at=now,
        ))
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent first vote created the row; it already counts today.
            await db.rollback()
        return None

    last = streak.last_vote_date
    if last is not None and last >= today:
        return None

    if last is not None and (today - last).days == 1:
        streak.current_streak += 1
    else:
        streak.current_streak = 1
        streak.streak_start_date = today
    streak.longest_streak = max(streak.longest_streak, streak.current_streak)
    streak.last_vote_date = today
    streak.updated_at = now
    await db.commit()

    logger.debug("User %d streak now %d", user_id, streak.current_streak)
    return build_milestone_notification(streak.current_streak)


@degrade_on_unavailable(default=list)
async def get_streak_leaderboard(db: AsyncSession, limit: int = 10) -> list[dict]:
    """Users by current streak descending, ties by user id ascending."""
    result = await db.execute(
        select(Streak, User.name)
        .join(User, Streak.user_id == User.id)
        .order_by(Streak.current_streak.desc(), Streak.user_id.asc())
        .limit(limit)
    )
    return [
        {
            "rank": idx + 1,
            "user_id": row.Streak.user_id,
            "user_name": row.name,
            "current_streak": row.Streak.current_streak,
            "longest_streak": row.Streak.longest_streak,
        }
        for idx, row in enumerate(result)
    ]
