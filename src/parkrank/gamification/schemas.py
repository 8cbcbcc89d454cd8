"""Pydantic response models for streak, achievement and challenge endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


# --- Streak ---


class StreakResponse(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_vote_date: date | None = None
    streak_start_date: date | None = None


class StreakLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    user_name: str | None = None
    current_streak: int
    longest_streak: int


class StreakLeaderboardResponse(BaseModel):
    entries: list[StreakLeaderboardEntry]


# --- Achievements ---


class AchievementDefinitionResponse(BaseModel):
    model_config = {"from_attributes": True}

    code: str
    name: str
    description: str
    icon: str
    color: str
    category: str
    target_value: int
    sort_order: int


class AllAchievementsResponse(BaseModel):
    achievements: list[AchievementDefinitionResponse]


class UnlockedAchievement(BaseModel):
    code: str
    name: str
    description: str
    icon: str
    color: str
    unlocked_at: datetime


class UserAchievementsResponse(BaseModel):
    unlocked: list[UnlockedAchievement]
    total_unlocked: int
    total_available: int


class AchievementProgressEntry(BaseModel):
    code: str
    name: str
    description: str
    icon: str
    color: str
    category: str
    is_unlocked: bool
    current_progress: int
    target_value: int
    progress_percentage: int


class AchievementProgressResponse(BaseModel):
    achievements: list[AchievementProgressEntry]


# --- Challenges ---


class ChallengeResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    code: str
    name: str
    description: str
    icon: str
    color: str
    type: str
    target_value: int
    start_date: datetime
    end_date: datetime


class ActiveChallengesResponse(BaseModel):
    challenges: list[ChallengeResponse]


class ChallengeProgressEntry(BaseModel):
    challenge: ChallengeResponse
    progress: int
    is_completed: bool
    completed_at: datetime | None = None
    progress_percentage: int


class UserChallengesResponse(BaseModel):
    challenges: list[ChallengeProgressEntry]


class ChallengeNotificationEntry(BaseModel):
    type: str
    challenge_name: str
    challenge_code: str
    message: str
    percentage: int
    icon: str


class ChallengeNotificationsResponse(BaseModel):
    notifications: list[ChallengeNotificationEntry]
