"""Pydantic request/response models for the vote endpoint."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class VoteRequest(BaseModel):
    park1_id: int = Field(gt=0)
    park2_id: int = Field(gt=0)
    winner_id: int = Field(gt=0)
    referral_code: str | None = Field(default=None, min_length=1, max_length=16)


class ParkResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    location: str
    image_url: str | None = None
    rating: float
    vote_count: int


class StreakMilestoneResponse(BaseModel):
    type: str
    streak_days: int
    icon: str
    message: str


class UnlockedAchievementResponse(BaseModel):
    model_config = {"from_attributes": True}

    code: str
    name: str
    description: str
    icon: str
    color: str


class VoteResponse(BaseModel):
    vote_id: int
    created_at: datetime
    park1: ParkResponse
    park2: ParkResponse
    streak_milestone: StreakMilestoneResponse | None = None
    unlocked_achievements: list[UnlockedAchievementResponse] = []
    challenges_updated: int = 0
    referral_completed: bool = False
