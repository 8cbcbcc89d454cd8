"""Pydantic response models for weekly competition endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TopStreakerEntry(BaseModel):
    rank: int
    user_id: int
    user_name: str | None = None
    current_streak: int


class WeeklyChallengeResponse(BaseModel):
    id: int
    week_start: datetime
    week_end: datetime
    is_active: bool
    top_streakers: list[TopStreakerEntry]


class WeeklyLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    user_name: str | None = None
    streak_length: int
    badge_icon: str
    badge_name: str


class WeeklyLeaderboardResponse(BaseModel):
    window_id: int
    entries: list[WeeklyLeaderboardEntry]


class WeeklyBadgeResponse(BaseModel):
    model_config = {"from_attributes": True}

    window_id: int
    rank: int
    streak_length: int
    badge_icon: str
    badge_name: str
    awarded_at: datetime


class UserWeeklyBadgesResponse(BaseModel):
    badges: list[WeeklyBadgeResponse]
