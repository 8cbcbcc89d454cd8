"""Achievement evaluation with duplicate prevention.

Unlocks are permanent. Stats are recomputed from the user's attributed votes on
every check, so evaluation is idempotent and safe to run after any vote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import AchievementDefinition, Park, UserAchievementUnlock, UserVoteAttribution
from parkrank.errors import UnknownAchievementError, degrade_on_unavailable
from parkrank.utils import round_half_up

logger = logging.getLogger(__name__)

# Vote-count achievements fire on exact totals, checked after each vote.
VOTE_COUNT_ACHIEVEMENTS: dict[int, str] = {
    1: "first_vote",
    10: "ten_votes",
    50: "fifty_votes",
    100: "hundred_votes",
}

# (max rank, code), best tier first. Only one tier is attempted per check.
FAVORITE_RANK_ACHIEVEMENTS: list[tuple[int, str]] = [
    (1, "favorite_number_one"),
    (5, "favorite_top_five"),
    (10, "favorite_top_ten"),
]

ACHIEVEMENT_DEFINITIONS: list[dict] = [
    {
        "code": "first_vote",
        "name": "First Vote",
        "description": "Cast your first vote",
        "icon": "Vote",
        "color": "yellow",
        "category": "voting",
        "target_value": 1,
        "sort_order": 1,
    },
    {
        "code": "ten_votes",
        "name": "Decade Voter",
        "description": "Cast 10 votes",
        "icon": "Award",
        "color": "orange",
        "category": "voting",
        "target_value": 10,
        "sort_order": 2,
    },
    {
        "code": "fifty_votes",
        "name": "Half Century",
        "description": "Cast 50 votes",
        "icon": "Trophy",
        "color": "green",
        "category": "voting",
        "target_value": 50,
        "sort_order": 3,
    },
    {
        "code": "hundred_votes",
        "name": "Century Club",
        "description": "Cast 100 votes",
        "icon": "Crown",
        "color": "purple",
        "category": "voting",
        "target_value": 100,
        "sort_order": 4,
    },
    {
        "code": "favorite_top_ten",
        "name": "Trendsetter",
        "description": "Your favorite park reaches the top 10",
        "icon": "TrendingUp",
        "color": "blue",
        "category": "favorite",
        "target_value": 1,
        "sort_order": 5,
    },
    {
        "code": "favorite_top_five",
        "name": "Tastemaker",
        "description": "Your favorite park reaches the top 5",
        "icon": "Star",
        "color": "cyan",
        "category": "favorite",
        "target_value": 1,
        "sort_order": 6,
    },
    {
        "code": "favorite_number_one",
        "name": "Ultimate Fan",
        "description": "Your favorite park reaches #1",
        "icon": "Heart",
        "color": "red",
        "category": "favorite",
        "target_value": 1,
        "sort_order": 7,
    },
]

_FAVORITE_MAX_RANK = {code: max_rank for max_rank, code in FAVORITE_RANK_ACHIEVEMENTS}


@dataclass
class VoteStats:
    total_votes: int
    favorite_park_id: int | None
    favorite_park_rank: int | None


async def get_achievement_by_code(db: AsyncSession, code: str) -> AchievementDefinition | None:
    """Fetch an achievement definition by code."""
    result = await db.execute(
        select(AchievementDefinition).where(AchievementDefinition.code == code)
    )
    return result.scalar_one_or_none()


async def has_user_achievement(db: AsyncSession, user_id: int, code: str) -> bool:
    """Check if user already unlocked a specific achievement."""
    result = await db.execute(
        select(UserAchievementUnlock.id).where(
            UserAchievementUnlock.user_id == user_id,
            UserAchievementUnlock.achievement_code == code,
        )
    )
    return result.scalar_one_or_none() is not None


async def unlock_achievement(
    db: AsyncSession, user_id: int, code: str
) -> AchievementDefinition | None:
    """Unlock an achievement for a user.

    Returns the definition if newly unlocked, None if it was already unlocked.
    Raises UnknownAchievementError for codes that were never seeded. Store
    failures propagate to the caller.
    """
    achievement = await get_achievement_by_code(db, code)
    if achievement is None:
        raise UnknownAchievementError(f"Unknown achievement: {code}")

    if await has_user_achievement(db, user_id, code):
        return None

    db.add(UserAchievementUnlock(
        user_id=user_id,
        achievement_code=code,
        unlocked_at=datetime.now(timezone.utc),
    ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return None  # Race condition: unlocked concurrently

    logger.info("User %d unlocked achievement %s", user_id, code)
    return achievement


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[UserAchievementUnlock]:
    """A user's unlocks, oldest first."""
    result = await db.execute(
        select(UserAchievementUnlock)
        .where(UserAchievementUnlock.user_id == user_id)
        .order_by(UserAchievementUnlock.unlocked_at.asc(), UserAchievementUnlock.id.asc())
    )
    return list(result.scalars().all())


async def get_park_rank(db: AsyncSession, park_id: int) -> int | None:
    """1-based position of a park by rating desc, park id asc among equal ratings."""
    park = (await db.execute(
        select(Park).where(Park.id == park_id).execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if park is None:
        return None
    result = await db.execute(
        select(func.count()).select_from(Park).where(
            (Park.rating > park.rating)
            | ((Park.rating == park.rating) & (Park.id < park.id))
        )
    )
    return result.scalar_one() + 1


async def get_user_vote_stats(db: AsyncSession, user_id: int) -> VoteStats:
    """Lifetime vote total and the user's most-chosen park with its current rank."""
    total_result = await db.execute(
        select(func.count()).select_from(UserVoteAttribution).where(
            UserVoteAttribution.user_id == user_id
        )
    )
    total_votes = total_result.scalar_one()
    if total_votes == 0:
        return VoteStats(total_votes=0, favorite_park_id=None, favorite_park_rank=None)

    picks = func.count(UserVoteAttribution.id)
    favorite_result = await db.execute(
        select(UserVoteAttribution.chosen_park_id)
        .where(UserVoteAttribution.user_id == user_id)
        .group_by(UserVoteAttribution.chosen_park_id)
        .order_by(picks.desc(), UserVoteAttribution.chosen_park_id.asc())
        .limit(1)
    )
    favorite_park_id = favorite_result.scalar_one()
    return VoteStats(
        total_votes=total_votes,
        favorite_park_id=favorite_park_id,
        favorite_park_rank=await get_park_rank(db, favorite_park_id),
    )


def achievements_due(stats: VoteStats) -> list[str]:
    """Codes whose rule holds for ``stats``, at most one favorite tier."""
    codes: list[str] = []
    vote_code = VOTE_COUNT_ACHIEVEMENTS.get(stats.total_votes)
    if vote_code is not None:
        codes.append(vote_code)

    if stats.favorite_park_rank is not None:
        for max_rank, code in FAVORITE_RANK_ACHIEVEMENTS:
            if stats.favorite_park_rank <= max_rank:
                codes.append(code)
                break
    return codes


async def check_and_unlock_achievements(
    db: AsyncSession, user_id: int
) -> list[AchievementDefinition]:
    """Evaluate every rule for the user and return only the newly unlocked ones."""
    stats = await get_user_vote_stats(db, user_id)
    unlocked: list[AchievementDefinition] = []
    for code in achievements_due(stats):
        achievement = await unlock_achievement(db, user_id, code)
        if achievement is not None:
            unlocked.append(achievement)
    return unlocked


def _current_progress(definition: AchievementDefinition, stats: VoteStats) -> int:
    if definition.category == "voting":
        return min(stats.total_votes, definition.target_value)
    max_rank = _FAVORITE_MAX_RANK.get(definition.code)
    if max_rank is not None and stats.favorite_park_rank is not None and stats.favorite_park_rank <= max_rank:
        return definition.target_value
    return 0


@degrade_on_unavailable(default=list)
async def get_achievement_progress(db: AsyncSession, user_id: int) -> list[dict]:
    """Every definition with the user's unlock state and progress toward it."""
    definitions = (await db.execute(
        select(AchievementDefinition).order_by(AchievementDefinition.sort_order.asc())
    )).scalars().all()
    unlocked_codes = {u.achievement_code for u in await get_user_achievements(db, user_id)}
    stats = await get_user_vote_stats(db, user_id)

    progress: list[dict] = []
    for definition in definitions:
        is_unlocked = definition.code in unlocked_codes
        current = definition.target_value if is_unlocked else _current_progress(definition, stats)
        percentage = (
            round_half_up(current / definition.target_value * 100)
            if definition.target_value > 0 else 0
        )
        progress.append({
            "code": definition.code,
            "name": definition.name,
            "description": definition.description,
            "icon": definition.icon,
            "color": definition.color,
            "category": definition.category,
            "is_unlocked": is_unlocked,
            "current_progress": current,
            "target_value": definition.target_value,
            "progress_percentage": percentage,
        })
    return progress


async def get_locked_achievements(db: AsyncSession, user_id: int) -> list[dict]:
    """Locked achievements, closest to unlocking first."""
    progress = await get_achievement_progress(db, user_id)
    locked = [p for p in progress if not p["is_unlocked"]]
    # sorted() is stable, so equal percentages keep sort_order
    return sorted(locked, key=lambda p: -p["progress_percentage"])


async def get_next_achievements(db: AsyncSession, user_id: int, limit: int = 3) -> list[dict]:
    """The ``limit`` locked achievements the user is closest to."""
    return (await get_locked_achievements(db, user_id))[:limit]
