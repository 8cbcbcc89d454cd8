"""Weekly streak competition: windows, top-3 badges and rotation.

Every Monday 00:00 (calendar timezone) the active window closes: the three
users with the longest current streaks get a badge and a ranking notification,
other users still on a streak are told the week ended without a badge,
everyone gets a "new challenge" notification, and the next window opens.
The whole rotation is one transaction; UNIQUE(week_start) makes a second
rotation of the same week fail and roll back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import Notification, Streak, User, WeeklyBadge, WeeklyCompetitionWindow
from parkrank.errors import degrade_on_unavailable
from parkrank.social.notification_service import create_notification, push_notification
from parkrank.utils import get_configured_tz, get_week_boundaries

logger = logging.getLogger(__name__)

TOP_N = 3

# rank -> (icon, badge name, notification title)
BADGE_TIERS: dict[int, tuple[str, str, str]] = {
    1: ("\U0001f947", "Weekly Champion", "\U0001f947 You're the Weekly Champion!"),
    2: ("\U0001f948", "Weekly Runner-Up", "\U0001f948 You're the Weekly Runner-Up!"),
    3: ("\U0001f949", "Weekly Third Place", "\U0001f949 You earned a Weekly Third Place Badge!"),
}

CHALLENGE_START_TITLE = "\U0001f3c6 New Weekly Streak Challenge Started!"
CHALLENGE_START_MESSAGE = (
    "A new weekly challenge has begun! Vote daily to build your streak "
    "and compete for top 3 badges."
)
CHALLENGE_END_TITLE = "\u23f1\ufe0f Weekly Streak Challenge Ended"


@dataclass
class RankedStreaker:
    rank: int
    user_id: int
    current_streak: int
    user_name: str | None = None


@dataclass
class WeeklyChallengeView:
    window: WeeklyCompetitionWindow
    top_streakers: list[RankedStreaker] = field(default_factory=list)


def rank_streakers(
    rows: Iterable[tuple[int, int, str | None]], limit: int = TOP_N
) -> list[RankedStreaker]:
    """Rank (user_id, current_streak, name) rows.

    Longest streak first, lower user id first among equal streaks. Users
    without an active streak are not ranked.
    """
    eligible = [row for row in rows if row[1] > 0]
    eligible.sort(key=lambda row: (-row[1], row[0]))
    return [
        RankedStreaker(rank=idx + 1, user_id=user_id, current_streak=streak, user_name=name)
        for idx, (user_id, streak, name) in enumerate(eligible[:limit])
    ]


def ranking_message(streak_length: int, badge_name: str) -> str:
    return (
        f"Congratulations! Your {streak_length}-day voting streak earned you "
        f"a {badge_name} badge. Keep it up!"
    )


def challenge_end_message(streak_length: int) -> str:
    return (
        f"This week's challenge is over. Your {streak_length}-day streak carries into "
        "the new week, so keep voting to reach the top 3."
    )


async def get_top_streakers(db: AsyncSession, limit: int = TOP_N) -> list[RankedStreaker]:
    """Live top streakers from current streak state."""
    result = await db.execute(
        select(Streak.user_id, Streak.current_streak, User.name)
        .join(User, Streak.user_id == User.id)
        .where(Streak.current_streak > 0)
        .order_by(Streak.current_streak.desc(), Streak.user_id.asc())
        .limit(limit)
    )
    return rank_streakers(result.all(), limit)


async def get_active_window(db: AsyncSession) -> WeeklyCompetitionWindow | None:
    result = await db.execute(
        select(WeeklyCompetitionWindow)
        .where(WeeklyCompetitionWindow.is_active.is_(True))
        .order_by(WeeklyCompetitionWindow.week_start.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_window_by_week_start(db: AsyncSession, week_start: datetime) -> WeeklyCompetitionWindow | None:
    result = await db.execute(
        select(WeeklyCompetitionWindow).where(WeeklyCompetitionWindow.week_start == week_start)
    )
    return result.scalar_one_or_none()


async def create_window(
    db: AsyncSession, now: datetime | None = None, tz: tzinfo | None = None
) -> WeeklyCompetitionWindow:
    """Add (and flush) an active window for the week containing ``now``."""
    if tz is None:
        tz = get_configured_tz()
    week_start, week_end = get_week_boundaries(tz, now)
    stamp = datetime.now(timezone.utc)
    window = WeeklyCompetitionWindow(
        week_start=week_start,
        week_end=week_end,
        is_active=True,
        created_at=stamp,
        updated_at=stamp,
    )
    db.add(window)
    await db.flush()
    return window


@degrade_on_unavailable(default=lambda: None)
async def get_or_create_current_weekly_challenge(
    db: AsyncSession, now: datetime | None = None, tz: tzinfo | None = None
) -> WeeklyChallengeView | None:
    """The active window with a live top 3, creating this week's window if none is active."""
    window = await get_active_window(db)
    if window is None:
        try:
            window = await create_window(db, now, tz)
            await db.commit()
            logger.info("Created weekly window %d starting %s", window.id, window.week_start)
        except IntegrityError:
            # Created concurrently, or this week was already rotated and closed.
            await db.rollback()
            week_start, _ = get_week_boundaries(tz or get_configured_tz(), now)
            window = await get_window_by_week_start(db, week_start)
            if window is None:
                return None

    return WeeklyChallengeView(window=window, top_streakers=await get_top_streakers(db))


async def award_weekly_badges(
    db: AsyncSession,
    window_id: int,
    streakers: list[RankedStreaker],
    now: datetime | None = None,
) -> list[WeeklyBadge]:
    """Add a badge row for each ranked streaker (flushed, not committed)."""
    if now is None:
        now = datetime.now(timezone.utc)
    badges: list[WeeklyBadge] = []
    for streaker in streakers[:TOP_N]:
        icon, name, _ = BADGE_TIERS[streaker.rank]
        badge = WeeklyBadge(
            window_id=window_id,
            user_id=streaker.user_id,
            rank=streaker.rank,
            streak_length=streaker.current_streak,
            badge_icon=icon,
            badge_name=name,
            awarded_at=now,
        )
        db.add(badge)
        badges.append(badge)
        logger.info("Awarded %s to user %d for window %d", name, streaker.user_id, window_id)
    await db.flush()
    return badges


async def send_top3_ranking_notifications(
    db: AsyncSession, window_id: int, badges: list[WeeklyBadge]
) -> list[Notification]:
    notifications = []
    for badge in sorted(badges, key=lambda b: b.rank):
        _, _, title = BADGE_TIERS[badge.rank]
        notifications.append(await create_notification(
            db,
            badge.user_id,
            "top_3_ranking",
            title,
            ranking_message(badge.streak_length, badge.badge_name),
            window_id=window_id,
            rank=badge.rank,
            badge_icon=badge.badge_icon,
        ))
    return notifications


async def send_challenge_start_notifications(db: AsyncSession, window_id: int) -> list[Notification]:
    """Tell every user a new weekly challenge has started."""
    user_ids = (await db.execute(select(User.id).order_by(User.id.asc()))).scalars().all()
    notifications = [
        await create_notification(
            db, user_id, "challenge_start", CHALLENGE_START_TITLE, CHALLENGE_START_MESSAGE,
            window_id=window_id,
        )
        for user_id in user_ids
    ]
    logger.info("Sent challenge start notifications to %d users", len(notifications))
    return notifications


async def send_challenge_end_notifications(
    db: AsyncSession, window_id: int, exclude_user_ids: Iterable[int] = ()
) -> list[Notification]:
    """Tell users still on a streak that ``window_id`` closed without a badge for them."""
    excluded = set(exclude_user_ids)
    rows = (await db.execute(
        select(Streak.user_id, Streak.current_streak)
        .where(Streak.current_streak > 0)
        .order_by(Streak.user_id.asc())
    )).all()
    notifications = [
        await create_notification(
            db, user_id, "challenge_end", CHALLENGE_END_TITLE, challenge_end_message(streak),
            window_id=window_id,
        )
        for user_id, streak in rows
        if user_id not in excluded
    ]
    logger.info("Sent challenge end notifications to %d users", len(notifications))
    return notifications


async def _deactivate_window(db: AsyncSession, window_id: int) -> bool:
    result = await db.execute(
        update(WeeklyCompetitionWindow)
        .where(WeeklyCompetitionWindow.id == window_id, WeeklyCompetitionWindow.is_active.is_(True))
        .values(is_active=False, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def complete_weekly_challenge(db: AsyncSession, window_id: int) -> bool:
    """Close a window without awarding. False if it was not active."""
    closed = await _deactivate_window(db, window_id)
    await db.commit()
    return closed


async def rotate_weekly_challenge(
    db: AsyncSession,
    now: datetime | None = None,
    redis: Any | None = None,
    tz: tzinfo | None = None,
) -> WeeklyCompetitionWindow | None:
    """Close the active window (badges + notifications) and open the current week's.

    Returns the new window, or None when this week has already been rotated.
    Store failures propagate after rollback.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    notifications: list[Notification] = []

    try:
        previous = await get_active_window(db)
        if previous is not None:
            streakers = await get_top_streakers(db)
            badges = await award_weekly_badges(db, previous.id, streakers, now)
            notifications += await send_top3_ranking_notifications(db, previous.id, badges)
            notifications += await send_challenge_end_notifications(
                db, previous.id, exclude_user_ids=[badge.user_id for badge in badges]
            )
            await _deactivate_window(db, previous.id)

        window = await create_window(db, now, tz)
        notifications += await send_challenge_start_notifications(db, window.id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Weekly window for %s already rotated, skipping", now.isoformat())
        return None
    except Exception:
        await db.rollback()
        raise

    for notification in notifications:
        await push_notification(redis, notification)

    logger.info(
        "Rotated weekly challenge: closed %s, opened %d (%s .. %s)",
        previous.id if previous is not None else "none",
        window.id, window.week_start, window.week_end,
    )
    return window


@degrade_on_unavailable(default=list)
async def get_user_weekly_badges(db: AsyncSession, user_id: int) -> list[WeeklyBadge]:
    """A user's weekly badges, newest first."""
    result = await db.execute(
        select(WeeklyBadge)
        .where(WeeklyBadge.user_id == user_id)
        .order_by(WeeklyBadge.awarded_at.desc(), WeeklyBadge.id.desc())
    )
    return list(result.scalars().all())


@degrade_on_unavailable(default=list)
async def get_weekly_leaderboard(db: AsyncSession, window_id: int) -> list[dict]:
    """Badge holders of a closed window, by rank."""
    result = await db.execute(
        select(WeeklyBadge, User.name)
        .join(User, WeeklyBadge.user_id == User.id)
        .where(WeeklyBadge.window_id == window_id)
        .order_by(WeeklyBadge.rank.asc())
    )
    return [
        {
            "rank": row.WeeklyBadge.rank,
            "user_id": row.WeeklyBadge.user_id,
            "user_name": row.name,
            "streak_length": row.WeeklyBadge.streak_length,
            "badge_icon": row.WeeklyBadge.badge_icon,
            "badge_name": row.WeeklyBadge.badge_name,
        }
        for row in result
    ]


@degrade_on_unavailable(default=lambda: None)
async def get_user_weekly_progress(db: AsyncSession, user_id: int, window_id: int) -> dict:
    """Current streak plus the badge rank the user holds in ``window_id``, if any."""
    streak = (await db.execute(
        select(Streak.current_streak).where(Streak.user_id == user_id)
    )).scalar_one_or_none()
    rank = (await db.execute(
        select(WeeklyBadge.rank).where(
            WeeklyBadge.user_id == user_id,
            WeeklyBadge.window_id == window_id,
        )
    )).scalar_one_or_none()
    return {
        "user_id": user_id,
        "window_id": window_id,
        "current_streak": streak or 0,
        "rank": rank,
    }
