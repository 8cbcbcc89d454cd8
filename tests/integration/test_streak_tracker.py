"""Integration tests for the voting streak state machine."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from parkrank.db.models import Streak
from parkrank.gamification.streak_service import (
    get_streak_leaderboard,
    get_user_streak,
    update_voting_streak,
)

DAY_1 = date(2026, 3, 2)


async def _vote_days(db, user_id: int, start: date, days: int) -> list:
    return [
        await update_voting_streak(db, user_id, today=start + timedelta(days=i))
        for i in range(days)
    ]


class TestUpdateVotingStreak:
    @pytest.mark.asyncio
    async def test_first_vote_creates_streak(self, db_session, make_user):
        user = await make_user()
        assert await update_voting_streak(db_session, user.id, today=DAY_1) is None

        streak = await get_user_streak(db_session, user.id)
        assert streak.current_streak == 1
        assert streak.longest_streak == 1
        assert streak.streak_start_date == DAY_1
        assert streak.last_vote_date == DAY_1

    @pytest.mark.asyncio
    async def test_three_consecutive_days_fire_milestone(self, db_session, make_user):
        user = await make_user()
        results = await _vote_days(db_session, user.id, DAY_1, 3)

        assert results[:2] == [None, None]
        milestone = results[2]
        assert milestone.type == "streak_milestone"
        assert milestone.streak_days == 3
        assert milestone.icon == "\U0001f525"

        streak = await get_user_streak(db_session, user.id)
        assert streak.current_streak == 3
        assert streak.longest_streak == 3

    @pytest.mark.asyncio
    async def test_same_day_is_noop(self, db_session, make_user):
        user = await make_user()
        await _vote_days(db_session, user.id, DAY_1, 2)

        assert await update_voting_streak(db_session, user.id, today=DAY_1 + timedelta(days=1)) is None
        streak = await get_user_streak(db_session, user.id)
        assert streak.current_streak == 2

    @pytest.mark.asyncio
    async def test_gap_resets_but_keeps_longest(self, db_session, make_user):
        user = await make_user()
        await _vote_days(db_session, user.id, DAY_1, 4)

        restart = DAY_1 + timedelta(days=6)
        assert await update_voting_streak(db_session, user.id, today=restart) is None

        streak = await get_user_streak(db_session, user.id)
        assert streak.current_streak == 1
        assert streak.longest_streak == 4
        assert streak.streak_start_date == restart

    @pytest.mark.asyncio
    async def test_week_milestone(self, db_session, make_user):
        user = await make_user()
        results = await _vote_days(db_session, user.id, DAY_1, 7)
        milestones = [r for r in results if r is not None]
        assert [(m.streak_days, m.icon) for m in milestones] == [(3, "\U0001f525"), (7, "\u2b50")]

    @pytest.mark.asyncio
    async def test_longest_never_decreases(self, db_session, make_user):
        user = await make_user()
        await _vote_days(db_session, user.id, DAY_1, 5)
        await _vote_days(db_session, user.id, DAY_1 + timedelta(days=10), 2)

        streak = await get_user_streak(db_session, user.id)
        assert streak.current_streak == 2
        assert streak.longest_streak == 5


class TestStreakLeaderboard:
    @pytest.mark.asyncio
    async def test_ordered_by_streak_then_user(self, db_session, make_user):
        users = [await make_user(f"user{i}") for i in range(3)]
        for user, current in zip(users, [4, 9, 4]):
            db_session.add(Streak(user_id=user.id, current_streak=current, longest_streak=current))
        await db_session.commit()

        rows = await get_streak_leaderboard(db_session, limit=10)
        assert [(r["rank"], r["user_id"]) for r in rows] == [
            (1, users[1].id),
            (2, users[0].id),
            (3, users[2].id),
        ]
        assert rows[0]["user_name"] == "user1"
