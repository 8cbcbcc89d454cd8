"""Pydantic models for referral endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ReferralInviteRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")


class ReferralInviteResponse(BaseModel):
    model_config = {"from_attributes": True}

    referral_code: str
    referee_email: str | None = None
    expires_at: datetime


class ReferralRewardEntry(BaseModel):
    id: int
    reward_type: str
    reward_value: int
    description: str
    is_redeemed: bool
    awarded_at: datetime


class ReferralEntry(BaseModel):
    referral_code: str
    referee_email: str | None = None
    status: str
    created_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None


class ReferralInfoResponse(BaseModel):
    user_id: int
    referral_code: str
    total_invites: int = 0
    completed_referrals: int = 0
    total_rewards_earned: int = 0
    rewards: list[ReferralRewardEntry] = []
    referrals: list[ReferralEntry] = []


class ReferralLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    user_name: str | None = None
    completed_referrals: int
    total_rewards_earned: int


class ReferralLeaderboardResponse(BaseModel):
    entries: list[ReferralLeaderboardEntry]
