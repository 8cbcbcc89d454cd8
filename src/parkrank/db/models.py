"""ORM models for parks, votes and the progression engine.

The schema is mirrored by the raw DDL revisions under alembic/versions/.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parkrank.db.base import Base

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Identity row owned by the auth layer; progression rows hang off it."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Parks & Votes
# ---------------------------------------------------------------------------


class Park(Base):
    """A rankable park. rating and vote_count are written only by the vote pipeline."""

    __tablename__ = "parks"
    __table_args__ = (Index("idx_parks_rating", "rating"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating: Mapped[float] = mapped_column(Float, nullable=False, server_default="1500")
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Vote(Base):
    """Immutable record of one head-to-head result."""

    __tablename__ = "votes"
    __table_args__ = (Index("idx_votes_created_at", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    park1_id: Mapped[int] = mapped_column(Integer, ForeignKey("parks.id"), nullable=False)
    park2_id: Mapped[int] = mapped_column(Integer, ForeignKey("parks.id"), nullable=False)
    winner_id: Mapped[int] = mapped_column(Integer, ForeignKey("parks.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RatingHistorySample(Base):
    """Rating of one park right after a vote; two rows per vote."""

    __tablename__ = "rating_history"
    __table_args__ = (Index("idx_rating_history_park", "park_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    park_id: Mapped[int] = mapped_column(Integer, ForeignKey("parks.id"), nullable=False)
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    vote_id: Mapped[int] = mapped_column(Integer, ForeignKey("votes.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserVoteAttribution(Base):
    """Links an authenticated user to the vote they cast and the park they picked."""

    __tablename__ = "user_votes"
    __table_args__ = (
        UniqueConstraint("vote_id", name="user_votes_vote_id_key"),
        Index("idx_user_votes_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    vote_id: Mapped[int] = mapped_column(Integer, ForeignKey("votes.id", ondelete="CASCADE"), nullable=False)
    chosen_park_id: Mapped[int] = mapped_column(Integer, ForeignKey("parks.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------


class Streak(Base):
    """Per-user day streak; one row per user."""

    __tablename__ = "user_streaks"
    __table_args__ = (
        UniqueConstraint("user_id", name="user_streaks_user_id_key"),
        Index("idx_user_streaks_current", "current_streak"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_vote_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    streak_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementDefinition(Base):
    """Static achievement metadata, seeded on startup."""

    __tablename__ = "achievement_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class UserAchievementUnlock(Base):
    """Permanent unlock. UNIQUE(user_id, achievement_code) keeps it at most once."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_code", name="user_achievements_user_id_code_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_code: Mapped[str] = mapped_column(
        String(64), ForeignKey("achievement_definitions.code"), nullable=False
    )
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    achievement: Mapped[AchievementDefinition] = relationship("AchievementDefinition", lazy="joined")


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class ChallengeDefinition(Base):
    """Time-boxed numeric goal (monthly or seasonal window)."""

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true())


class UserChallengeProgress(Base):
    """Per-user counter for one occurrence of a challenge. completed_at is written once.

    period_start is the challenge start_date the row was counted against, so a
    monthly or seasonal rollover starts a fresh row.
    """

    __tablename__ = "user_challenge_progress"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "challenge_id", "period_start", name="user_challenge_progress_user_challenge_period_key"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    challenge: Mapped[ChallengeDefinition] = relationship("ChallengeDefinition", lazy="joined")


# ---------------------------------------------------------------------------
# Weekly competition
# ---------------------------------------------------------------------------


class WeeklyCompetitionWindow(Base):
    """A 7-day ranking window. UNIQUE(week_start) stops a week rotating twice."""

    __tablename__ = "weekly_competition_windows"
    __table_args__ = (
        UniqueConstraint("week_start", name="weekly_competition_windows_week_start_key"),
        Index("idx_weekly_windows_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    week_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    week_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WeeklyBadge(Base):
    """Top-3 badge awarded when a window closes."""

    __tablename__ = "weekly_badges"
    __table_args__ = (
        UniqueConstraint("window_id", "rank", name="weekly_badges_window_id_rank_key"),
        Index("idx_weekly_badges_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    window_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("weekly_competition_windows.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    streak_length: Mapped[int] = mapped_column(Integer, nullable=False)
    badge_icon: Mapped[str] = mapped_column(String(16), nullable=False)
    badge_name: Mapped[str] = mapped_column(String(64), nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SchedulerState(Base):
    """Persisted next-fire-at of a recurring job, so restarts do not drift."""

    __tablename__ = "scheduler_state"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    next_fire_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_fired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


class UserReferralStats(Base):
    """A user's personal referral code and running totals."""

    __tablename__ = "user_referral_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    referral_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    total_invites: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    completed_referrals: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_rewards_earned: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Referral(Base):
    """One invitation. UNIQUE(referee_id) means a user is credited to one referrer at most."""

    __tablename__ = "referrals"
    __table_args__ = (Index("idx_referrals_referrer", "referrer_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referee_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    referee_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), unique=True, nullable=True
    )
    referral_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ReferralReward(Base):
    """Bonus points granted to a referrer for a completed referral."""

    __tablename__ = "referral_rewards"
    __table_args__ = (Index("idx_referral_rewards_user", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referral_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("referrals.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reward_value: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(256), nullable=False)
    is_redeemed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Append-only user notification log; only the read flag is mutated."""

    __tablename__ = "notifications"
    __table_args__ = (Index("idx_notifications_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    window_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("weekly_competition_windows.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    badge_icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
