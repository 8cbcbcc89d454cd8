"""Store outages degrade reads and progression writes to safe defaults."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from parkrank.competition.weekly_service import get_weekly_leaderboard
from parkrank.gamification.challenge_service import get_active_challenges, update_challenge_progress
from parkrank.gamification.streak_service import update_voting_streak
from parkrank.social.notification_service import (
    get_unread_notification_count,
    get_user_notifications,
    mark_notification_as_read,
)


def _down_session() -> AsyncMock:
    db = AsyncMock()
    db.execute.side_effect = OperationalError("SELECT 1", {}, ConnectionRefusedError("db down"))
    return db


class TestDegradeOnUnavailable:
    @pytest.mark.asyncio
    async def test_notifications_empty(self):
        db = _down_session()
        assert await get_user_notifications(db, 1, 20) == []
        db.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_unread_count_zero(self):
        assert await get_unread_notification_count(_down_session(), 1) == 0

    @pytest.mark.asyncio
    async def test_mark_read_false(self):
        assert await mark_notification_as_read(_down_session(), 1, user_id=1) is False

    @pytest.mark.asyncio
    async def test_streak_update_none(self):
        assert await update_voting_streak(_down_session(), 1) is None

    @pytest.mark.asyncio
    async def test_challenge_progress_false(self):
        assert await update_challenge_progress(_down_session(), 1, 1, 1) is False

    @pytest.mark.asyncio
    async def test_active_challenges_empty(self):
        assert await get_active_challenges(_down_session()) == []

    @pytest.mark.asyncio
    async def test_weekly_leaderboard_empty(self):
        assert await get_weekly_leaderboard(_down_session(), 1) == []

    @pytest.mark.asyncio
    async def test_plain_errors_still_propagate(self):
        db = AsyncMock()
        db.execute.side_effect = RuntimeError("bug")
        with pytest.raises(RuntimeError):
            await get_user_notifications(db, 1, 20)

    @pytest.mark.asyncio
    async def test_rollback_failure_is_tolerated(self):
        db = _down_session()
        db.rollback.side_effect = OSError("connection reset")
        assert await get_user_notifications(db, 1, 20) == []
