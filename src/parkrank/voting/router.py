"""Vote endpoint: record the vote, then run per-user follow-ups."""

from __future__ import annotations

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.auth.dependencies import get_optional_user
from parkrank.config import Settings
from parkrank.db.models import User
from parkrank.dependencies import get_app_settings, get_db
from parkrank.gamification.achievement_service import check_and_unlock_achievements
from parkrank.gamification.challenge_service import increment_vote_challenges
from parkrank.gamification.streak_service import update_voting_streak
from parkrank.referral.referral_service import complete_referral_on_first_vote
from parkrank.utils import get_calendar_tz, local_today
from parkrank.voting.schemas import (
    ParkResponse,
    StreakMilestoneResponse,
    UnlockedAchievementResponse,
    VoteRequest,
    VoteResponse,
)
from parkrank.voting.vote_service import record_vote

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Voting"])


@router.post("/votes", response_model=VoteResponse)
async def cast_vote(
    body: VoteRequest,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Record a head-to-head vote and update both parks' ratings."""
    user_id = user.id if user is not None else None
    result = await record_vote(
        db,
        body.park1_id,
        body.park2_id,
        body.winner_id,
        user_id=user_id,
        max_attempts=settings.vote_max_attempts,
    )
    response = VoteResponse(
        vote_id=result.vote.id,
        created_at=result.vote.created_at,
        park1=ParkResponse.model_validate(result.park1),
        park2=ParkResponse.model_validate(result.park2),
    )
    if user_id is None:
        return response

    # Follow-ups are best-effort: the vote is already committed.
    try:
        today = local_today(get_calendar_tz(settings.calendar_timezone))
        milestone = await update_voting_streak(db, user_id, today=today)
        if milestone is not None:
            response.streak_milestone = StreakMilestoneResponse(**asdict(milestone))
    except Exception:
        await db.rollback()
        logger.warning("vote_followup_failed", step="streak", user_id=user_id, exc_info=True)

    try:
        unlocked = await check_and_unlock_achievements(db, user_id)
        response.unlocked_achievements = [
            UnlockedAchievementResponse.model_validate(a) for a in unlocked
        ]
    except Exception:
        await db.rollback()
        logger.warning("vote_followup_failed", step="achievements", user_id=user_id, exc_info=True)

    try:
        response.challenges_updated = await increment_vote_challenges(db, user_id)
    except Exception:
        await db.rollback()
        logger.warning("vote_followup_failed", step="challenges", user_id=user_id, exc_info=True)

    try:
        response.referral_completed = await complete_referral_on_first_vote(db, user_id, body.referral_code)
    except Exception:
        await db.rollback()
        logger.warning("vote_followup_failed", step="referral", user_id=user_id, exc_info=True)

    return response
