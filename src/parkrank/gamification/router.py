"""Streak, achievement and challenge endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parkrank.auth.dependencies import get_current_user
from parkrank.db.models import AchievementDefinition, User
from parkrank.dependencies import get_db
from parkrank.gamification.achievement_service import (
    get_achievement_progress,
    get_next_achievements,
    get_user_achievements,
)
from parkrank.gamification.challenge_service import (
    get_active_challenges,
    get_all_challenge_notifications,
    get_user_challenge_progress,
)
from parkrank.gamification.schemas import (
    AchievementDefinitionResponse,
    AchievementProgressEntry,
    AchievementProgressResponse,
    ActiveChallengesResponse,
    AllAchievementsResponse,
    ChallengeNotificationEntry,
    ChallengeNotificationsResponse,
    ChallengeProgressEntry,
    ChallengeResponse,
    StreakLeaderboardEntry,
    StreakLeaderboardResponse,
    StreakResponse,
    UnlockedAchievement,
    UserAchievementsResponse,
    UserChallengesResponse,
)
from parkrank.gamification.streak_service import get_streak_leaderboard, get_user_streak
from parkrank.utils import round_half_up

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


# ── Streaks ──


@router.get("/users/me/streak", response_model=StreakResponse)
async def my_streak(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get current user's voting streak."""
    streak = await get_user_streak(db, user.id)
    if streak is None:
        return StreakResponse()
    return StreakResponse(
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        last_vote_date=streak.last_vote_date,
        streak_start_date=streak.streak_start_date,
    )


@router.get("/streaks/leaderboard", response_model=StreakLeaderboardResponse)
async def streak_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Longest current voting streaks."""
    rows = await get_streak_leaderboard(db, limit)
    return StreakLeaderboardResponse(entries=[StreakLeaderboardEntry(**r) for r in rows])


# ── Achievements ──


@router.get("/achievements", response_model=AllAchievementsResponse)
async def list_achievements(db: AsyncSession = Depends(get_db)):
    """Get all achievement definitions."""
    result = await db.execute(
        select(AchievementDefinition).order_by(AchievementDefinition.sort_order)
    )
    return AllAchievementsResponse(achievements=[
        AchievementDefinitionResponse.model_validate(a) for a in result.scalars().all()
    ])


@router.get("/users/me/achievements", response_model=UserAchievementsResponse)
async def my_achievements(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get current user's unlocked achievements."""
    unlocks = await get_user_achievements(db, user.id)
    total = len((await db.execute(select(AchievementDefinition.code))).all())
    return UserAchievementsResponse(
        unlocked=[
            UnlockedAchievement(
                code=u.achievement.code,
                name=u.achievement.name,
                description=u.achievement.description,
                icon=u.achievement.icon,
                color=u.achievement.color,
                unlocked_at=u.unlocked_at,
            )
            for u in unlocks
        ],
        total_unlocked=len(unlocks),
        total_available=total,
    )


@router.get("/users/me/achievements/progress", response_model=AchievementProgressResponse)
async def my_achievement_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Progress toward every achievement."""
    progress = await get_achievement_progress(db, user.id)
    return AchievementProgressResponse(achievements=[AchievementProgressEntry(**p) for p in progress])


@router.get("/users/me/achievements/next", response_model=AchievementProgressResponse)
async def my_next_achievements(
    limit: int = Query(3, ge=1, le=10),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Locked achievements closest to unlocking."""
    progress = await get_next_achievements(db, user.id, limit)
    return AchievementProgressResponse(achievements=[AchievementProgressEntry(**p) for p in progress])


# ── Challenges ──


@router.get("/challenges/active", response_model=ActiveChallengesResponse)
async def active_challenges(db: AsyncSession = Depends(get_db)):
    """Monthly and seasonal challenges running right now."""
    challenges = await get_active_challenges(db)
    return ActiveChallengesResponse(
        challenges=[ChallengeResponse.model_validate(c) for c in challenges]
    )


@router.get("/users/me/challenges", response_model=UserChallengesResponse)
async def my_challenges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current user's progress on every challenge they have started."""
    rows = await get_user_challenge_progress(db, user.id)
    return UserChallengesResponse(challenges=[
        ChallengeProgressEntry(
            challenge=ChallengeResponse.model_validate(row.challenge),
            progress=row.progress,
            is_completed=row.is_completed,
            completed_at=row.completed_at,
            progress_percentage=min(100, round_half_up(row.progress / row.challenge.target_value * 100)),
        )
        for row in rows
    ])


@router.get("/users/me/challenges/notifications", response_model=ChallengeNotificationsResponse)
async def my_challenge_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Milestone and completion notices for the current user's challenges."""
    notifications = await get_all_challenge_notifications(db, user.id)
    return ChallengeNotificationsResponse(
        notifications=[ChallengeNotificationEntry(**asdict(n)) for n in notifications]
    )
