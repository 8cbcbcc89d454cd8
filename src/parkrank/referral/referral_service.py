"""Referral program: personal codes, email invitations and first-vote rewards.

A referral completes when the invited user casts their first vote with the
code. Completion is a conditional UPDATE from 'pending', and UNIQUE(referee_id)
credits a user to at most one referrer, so concurrent redemptions award one
reward. Counters on user_referral_stats are incremented in SQL.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.db.models import Referral, ReferralReward, User, UserReferralStats, UserVoteAttribution
from parkrank.errors import ReferralCodeError, degrade_on_unavailable
from parkrank.utils import ensure_utc

logger = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_EXPIRY = timedelta(days=30)
REFERRAL_REWARD_TYPE = "referral_bonus"
REFERRAL_REWARD_POINTS = 100
CODE_ATTEMPTS = 5


def generate_referral_code() -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def _code_in_use(db: AsyncSession, code: str) -> bool:
    personal = await db.execute(select(UserReferralStats.id).where(UserReferralStats.referral_code == code))
    if personal.first() is not None:
        return True
    invite = await db.execute(select(Referral.id).where(Referral.referral_code == code))
    return invite.first() is not None


async def _new_code(db: AsyncSession) -> str:
    """A code not used by any personal code or invitation."""
    for _ in range(CODE_ATTEMPTS):
        code = generate_referral_code()
        if not await _code_in_use(db, code):
            return code
    raise ReferralCodeError(f"No unused referral code after {CODE_ATTEMPTS} attempts")


async def get_user_referral_stats(db: AsyncSession, user_id: int) -> UserReferralStats | None:
    result = await db.execute(
        select(UserReferralStats)
        .where(UserReferralStats.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_user_referral_stats(db: AsyncSession, user_id: int) -> UserReferralStats:
    """The user's referral stats row, created with a fresh personal code on first use."""
    for _ in range(CODE_ATTEMPTS):
        stats = await get_user_referral_stats(db, user_id)
        if stats is not None:
            return stats

        now = datetime.now(timezone.utc)
        stats = UserReferralStats(
            user_id=user_id,
            referral_code=await _new_code(db),
            total_invites=0,
            completed_referrals=0,
            total_rewards_earned=0,
            created_at=now,
            updated_at=now,
        )
        db.add(stats)
        try:
            await db.commit()
            logger.info("Created referral code for user %d", user_id)
            return stats
        except IntegrityError:
            # Created concurrently, or the code was taken in between; re-read.
            await db.rollback()

    raise ReferralCodeError(f"Could not create referral stats for user {user_id}")


async def _bump_stats(db: AsyncSession, user_id: int, now: datetime, **increments: int) -> None:
    await db.execute(
        update(UserReferralStats)
        .where(UserReferralStats.user_id == user_id)
        .values(
            updated_at=now,
            **{name: getattr(UserReferralStats, name) + amount for name, amount in increments.items()},
        )
        .execution_options(synchronize_session=False)
    )


async def create_referral(
    db: AsyncSession, referrer_id: int, email: str, now: datetime | None = None
) -> Referral:
    """Invite ``email`` with a new single-use code that expires after 30 days."""
    if now is None:
        now = datetime.now(timezone.utc)
    await get_or_create_user_referral_stats(db, referrer_id)

    referral = Referral(
        referrer_id=referrer_id,
        referee_email=email.strip().lower(),
        referral_code=await _new_code(db),
        status="pending",
        created_at=now,
        expires_at=now + REFERRAL_EXPIRY,
    )
    db.add(referral)
    await db.flush()
    await _bump_stats(db, referrer_id, now, total_invites=1)
    await db.commit()

    logger.info("User %d invited a friend with referral %d", referrer_id, referral.id)
    return referral


async def _already_referred(db: AsyncSession, referee_id: int) -> bool:
    result = await db.execute(select(Referral.id).where(Referral.referee_id == referee_id))
    return result.first() is not None


async def _open_link_referral(db: AsyncSession, referrer_id: int, now: datetime) -> Referral:
    """A pending referral for a redemption of someone's personal code."""
    referral = Referral(
        referrer_id=referrer_id,
        referee_email=None,
        referral_code=await _new_code(db),
        status="pending",
        created_at=now,
        expires_at=now + REFERRAL_EXPIRY,
    )
    db.add(referral)
    await db.flush()
    await _bump_stats(db, referrer_id, now, total_invites=1)
    return referral


async def complete_referral(
    db: AsyncSession, code: str, referee_id: int, now: datetime | None = None
) -> bool:
    """Credit the referrer behind ``code`` with ``referee_id``.

    ``code`` is an invitation code or a user's personal code. Returns False for
    unknown, expired, already completed or self-referral codes, and when the
    referee was already credited to someone.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    code = normalize_code(code)
    if await _already_referred(db, referee_id):
        return False

    result = await db.execute(
        select(Referral).where(Referral.referral_code == code).execution_options(populate_existing=True)
    )
    referral = result.scalar_one_or_none()
    if referral is None:
        stats = (await db.execute(
            select(UserReferralStats).where(UserReferralStats.referral_code == code)
        )).scalar_one_or_none()
        if stats is None or stats.user_id == referee_id:
            return False
        referral = await _open_link_referral(db, stats.user_id, now)
    elif (
        referral.status != "pending"
        or ensure_utc(referral.expires_at) <= now
        or referral.referrer_id == referee_id
    ):
        return False

    referral_id, referrer_id = referral.id, referral.referrer_id
    try:
        completed = await db.execute(
            update(Referral)
            .where(Referral.id == referral_id, Referral.status == "pending")
            .values(status="completed", referee_id=referee_id, completed_at=now)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        # The referee was credited by a concurrent redemption.
        await db.rollback()
        return False
    if completed.rowcount != 1:
        await db.rollback()
        return False

    db.add(ReferralReward(
        user_id=referrer_id,
        referral_id=referral_id,
        reward_type=REFERRAL_REWARD_TYPE,
        reward_value=REFERRAL_REWARD_POINTS,
        description="Friend joined and cast their first vote",
        is_redeemed=False,
        awarded_at=now,
    ))
    await _bump_stats(
        db, referrer_id, now, completed_referrals=1, total_rewards_earned=REFERRAL_REWARD_POINTS
    )
    await db.commit()

    logger.info("Referral %d completed: user %d referred user %d", referral_id, referrer_id, referee_id)
    return True


async def count_user_votes(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(UserVoteAttribution).where(UserVoteAttribution.user_id == user_id)
    )
    return result.scalar_one()


async def complete_referral_on_first_vote(db: AsyncSession, user_id: int, code: str | None) -> bool:
    """Redeem ``code`` for ``user_id`` if the vote just recorded was their first."""
    if not code:
        return False
    if await count_user_votes(db, user_id) != 1:
        return False
    return await complete_referral(db, code, user_id)


def referral_status(referral: Referral, now: datetime) -> str:
    """Stored status, with a pending invitation past its expiry shown as 'expired'."""
    if referral.status == "pending" and ensure_utc(referral.expires_at) <= now:
        return "expired"
    return referral.status


async def get_user_referral_info(db: AsyncSession, user_id: int) -> dict:
    """Code, counters, rewards and invitations (newest first) for one user."""
    stats = await get_or_create_user_referral_stats(db, user_id)
    rewards = (await db.execute(
        select(ReferralReward)
        .where(ReferralReward.user_id == user_id)
        .order_by(ReferralReward.awarded_at.desc(), ReferralReward.id.desc())
    )).scalars().all()
    referrals = (await db.execute(
        select(Referral)
        .where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
    )).scalars().all()

    now = datetime.now(timezone.utc)
    return {
        "user_id": user_id,
        "referral_code": stats.referral_code,
        "total_invites": stats.total_invites,
        "completed_referrals": stats.completed_referrals,
        "total_rewards_earned": stats.total_rewards_earned,
        "rewards": [
            {
                "id": r.id,
                "reward_type": r.reward_type,
                "reward_value": r.reward_value,
                "description": r.description,
                "is_redeemed": r.is_redeemed,
                "awarded_at": r.awarded_at,
            }
            for r in rewards
        ],
        "referrals": [
            {
                "referral_code": r.referral_code,
                "referee_email": r.referee_email,
                "status": referral_status(r, now),
                "created_at": r.created_at,
                "expires_at": r.expires_at,
                "completed_at": r.completed_at,
            }
            for r in referrals
        ],
    }


@degrade_on_unavailable(default=list)
async def get_referral_leaderboard(db: AsyncSession, limit: int = 10) -> list[dict]:
    """Users by completed referrals descending, ties by user id ascending."""
    result = await db.execute(
        select(UserReferralStats, User.name)
        .join(User, UserReferralStats.user_id == User.id)
        .order_by(UserReferralStats.completed_referrals.desc(), UserReferralStats.user_id.asc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return [
        {
            "rank": idx + 1,
            "user_id": row.UserReferralStats.user_id,
            "user_name": row.name,
            "completed_referrals": row.UserReferralStats.completed_referrals,
            "total_rewards_earned": row.UserReferralStats.total_rewards_earned,
        }
        for idx, row in enumerate(result)
    ]
