"""Referral endpoints: personal code, invitations and leaderboard."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.auth.dependencies import get_current_user
from parkrank.db.models import User
from parkrank.dependencies import get_db
from parkrank.referral.referral_service import (
    create_referral,
    get_referral_leaderboard,
    get_user_referral_info,
)
from parkrank.referral.schemas import (
    ReferralInfoResponse,
    ReferralInviteRequest,
    ReferralInviteResponse,
    ReferralLeaderboardEntry,
    ReferralLeaderboardResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Referrals"])


@router.get("/users/me/referrals", response_model=ReferralInfoResponse)
async def my_referrals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current user's referral code, counters, rewards and invitations."""
    return ReferralInfoResponse(**await get_user_referral_info(db, user.id))


@router.post("/referrals", response_model=ReferralInviteResponse, status_code=201)
async def invite_friend(
    body: ReferralInviteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Send an invitation code to a friend's email."""
    referral = await create_referral(db, user.id, body.email)
    return ReferralInviteResponse.model_validate(referral)


@router.get("/referrals/leaderboard", response_model=ReferralLeaderboardResponse)
async def referral_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Users with the most completed referrals."""
    rows = await get_referral_leaderboard(db, limit)
    return ReferralLeaderboardResponse(entries=[ReferralLeaderboardEntry(**r) for r in rows])
