"""Weekly competition endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.auth.dependencies import get_current_user
from parkrank.competition.schemas import (
    TopStreakerEntry,
    UserWeeklyBadgesResponse,
    WeeklyBadgeResponse,
    WeeklyChallengeResponse,
    WeeklyLeaderboardEntry,
    WeeklyLeaderboardResponse,
)
from parkrank.competition.weekly_service import (
    get_or_create_current_weekly_challenge,
    get_user_weekly_badges,
    get_weekly_leaderboard,
)
from parkrank.config import Settings
from parkrank.db.models import User
from parkrank.dependencies import get_app_settings, get_db
from parkrank.utils import ensure_utc, get_calendar_tz

router = APIRouter(prefix="/api/v1", tags=["Competition"])


@router.get("/weekly/current", response_model=WeeklyChallengeResponse)
async def current_weekly_challenge(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """This week's streak challenge with the live top 3."""
    view = await get_or_create_current_weekly_challenge(
        db, tz=get_calendar_tz(settings.calendar_timezone)
    )
    if view is None:
        raise HTTPException(status_code=503, detail="Weekly challenge unavailable")
    return WeeklyChallengeResponse(
        id=view.window.id,
        week_start=ensure_utc(view.window.week_start),
        week_end=ensure_utc(view.window.week_end),
        is_active=view.window.is_active,
        top_streakers=[TopStreakerEntry(**asdict(s)) for s in view.top_streakers],
    )


@router.get("/weekly/{window_id}/leaderboard", response_model=WeeklyLeaderboardResponse)
async def weekly_leaderboard(window_id: int, db: AsyncSession = Depends(get_db)):
    """Badge winners of a closed weekly window."""
    rows = await get_weekly_leaderboard(db, window_id)
    return WeeklyLeaderboardResponse(
        window_id=window_id,
        entries=[WeeklyLeaderboardEntry(**r) for r in rows],
    )


@router.get("/users/me/weekly-badges", response_model=UserWeeklyBadgesResponse)
async def my_weekly_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Weekly badges the current user has won."""
    badges = await get_user_weekly_badges(db, user.id)
    return UserWeeklyBadgesResponse(badges=[WeeklyBadgeResponse.model_validate(b) for b in badges])
