"""Vote recording: validate, rate, and persist in one transaction.

Park ratings are written with a compare-and-swap on the rating that was read,
so two concurrent votes touching the same park cannot lose an update. Both
swaps take their row locks in ascending park id order. A lost race (a failed
swap, or a deadlock or serialization failure reported by the database) rolls
the whole transaction back and retries from a fresh read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import Park, RatingHistorySample, UserVoteAttribution, Vote
from parkrank.errors import InvalidVoteError, NotFoundError, VoteConflictError
from parkrank.rating.elo import calculate_elo_ratings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

# deadlock_detected, serialization_failure
LOST_RACE_SQLSTATES = frozenset({"40P01", "40001"})


@dataclass
class VoteResult:
    park1: Park
    park2: Park
    vote: Vote


def validate_vote(park1_id: int, park2_id: int, winner_id: int) -> None:
    """Reject malformed pairs before touching the store."""
    if park1_id == park2_id:
        raise InvalidVoteError("A park cannot be matched against itself")
    if winner_id not in (park1_id, park2_id):
        raise InvalidVoteError(f"Winner {winner_id} is not part of the matchup")


async def get_park_by_id(db: AsyncSession, park_id: int) -> Park | None:
    """Fetch a park, always reloading its columns from the database."""
    result = await db.execute(
        select(Park).where(Park.id == park_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _swap_rating(db: AsyncSession, park: Park, new_rating: int, now: datetime) -> bool:
    """Conditionally write a park's new rating. False if another vote got there first."""
    result = await db.execute(
        update(Park)
        .where(Park.id == park.id, Park.rating == park.rating)
        .values(
            rating=float(new_rating),
            vote_count=Park.vote_count + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _is_lost_race(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in LOST_RACE_SQLSTATES


async def _swap_ratings(db: AsyncSession, swaps: list[tuple[Park, int]], now: datetime) -> bool:
    """Swap every rating in ascending park id order; stop at the first lost swap."""
    for park, new_rating in sorted(swaps, key=lambda swap: swap[0].id):
        if not await _swap_rating(db, park, new_rating, now):
            return False
    return True


async def record_vote(
    db: AsyncSession,
    park1_id: int,
    park2_id: int,
    winner_id: int,
    user_id: int | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> VoteResult:
    """Record one vote and update both parks' ratings.

    Raises InvalidVoteError, NotFoundError, or VoteConflictError when every
    attempt lost its compare-and-swap. Store failures propagate.
    """
    validate_vote(park1_id, park2_id, winner_id)

    for attempt in range(1, max_attempts + 1):
        park1 = await get_park_by_id(db, park1_id)
        park2 = await get_park_by_id(db, park2_id)
        if park1 is None or park2 is None:
            await db.rollback()
            missing = park1_id if park1 is None else park2_id
            raise NotFoundError(f"Park {missing} not found")

        old_rating1, old_rating2 = park1.rating, park2.rating
        new_rating1, new_rating2 = calculate_elo_ratings(
            park1.rating, park2.rating, winner_id == park1_id
        )
        now = datetime.now(timezone.utc)

        try:
            swapped = await _swap_ratings(db, [(park1, new_rating1), (park2, new_rating2)], now)
        except DBAPIError as exc:
            if not _is_lost_race(exc):
                raise
            swapped = False
        if not swapped:
            await db.rollback()
            logger.info(
                "Rating conflict on parks %d/%d (attempt %d/%d), retrying",
                park1_id, park2_id, attempt, max_attempts,
            )
            continue

        vote = Vote(park1_id=park1_id, park2_id=park2_id, winner_id=winner_id, created_at=now)
        db.add(vote)
        await db.flush()

        db.add_all([
            RatingHistorySample(park_id=park1_id, rating=float(new_rating1), vote_id=vote.id, created_at=now),
            RatingHistorySample(park_id=park2_id, rating=float(new_rating2), vote_id=vote.id, created_at=now),
        ])
        if user_id is not None:
            db.add(UserVoteAttribution(
                user_id=user_id,
                vote_id=vote.id,
                chosen_park_id=winner_id,
                created_at=now,
            ))

        await db.commit()
        await db.refresh(park1)
        await db.refresh(park2)

        logger.info(
            "Vote %d recorded: park %d %.0f -> %d, park %d %.0f -> %d",
            vote.id, park1_id, old_rating1, new_rating1, park2_id, old_rating2, new_rating2,
        )
        return VoteResult(park1=park1, park2=park2, vote=vote)

    raise VoteConflictError(
        f"Could not record vote on parks {park1_id}/{park2_id} after {max_attempts} attempts"
    )
