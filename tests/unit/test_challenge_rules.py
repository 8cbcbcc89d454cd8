"""Challenge windows and milestone classification."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from parkrank.gamification.challenge_service import (
    CHALLENGE_DEFINITIONS,
    challenge_window,
    classify_progress,
)


def _definition(code: str) -> dict:
    return next(c for c in CHALLENGE_DEFINITIONS if c["code"] == code)


class TestDefinitions:
    def test_three_monthly_four_seasonal(self):
        types = [c["type"] for c in CHALLENGE_DEFINITIONS]
        assert types.count("monthly") == 3
        assert types.count("seasonal") == 4

    def test_vote_machine(self):
        vote_machine = _definition("monthly_votes_25")
        assert vote_machine["name"] == "Vote Machine"
        assert vote_machine["target_value"] == 25


class TestChallengeWindow:
    def test_monthly_covers_calendar_month(self):
        now = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)
        start, end = challenge_window(_definition("monthly_votes_25"), now)
        assert start == datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 2, 28, 23, 59, 59, tzinfo=timezone.utc)

    def test_winter_in_january_started_in_december(self):
        now = datetime(2026, 1, 20, tzinfo=timezone.utc)
        start, end = challenge_window(_definition("seasonal_winter"), now)
        assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 2, 28, 23, 59, 59, tzinfo=timezone.utc)

    def test_past_season_rolls_to_next_year(self):
        now = datetime(2026, 7, 1, tzinfo=timezone.utc)
        start, _ = challenge_window(_definition("seasonal_spring"), now)
        assert start == datetime(2027, 3, 1, tzinfo=timezone.utc)

    def test_current_season_contains_now(self):
        now = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)
        start, end = challenge_window(_definition("seasonal_autumn"), now)
        assert start <= now <= end

    def test_window_in_calendar_timezone(self):
        tz = ZoneInfo("Asia/Tokyo")
        now = datetime(2026, 4, 30, 20, 0, tzinfo=timezone.utc)  # May 1 in Tokyo
        start, _ = challenge_window(_definition("monthly_votes_50"), now, tz)
        assert start.astimezone(tz) == datetime(2026, 5, 1, tzinfo=tz)


class TestClassifyProgress:
    @pytest.mark.parametrize("progress", [0, 10, 18])
    def test_below_75_is_silent(self, progress):
        assert classify_progress(progress, 25, "Vote Machine", "monthly_votes_25") is None

    def test_75_percent_milestone(self):
        n = classify_progress(19, 25, "Vote Machine", "monthly_votes_25")
        assert n.type == "milestone"
        assert n.percentage == 76
        assert n.icon == "\u26a1"
        assert "Almost there" in n.message
        assert "Vote Machine" in n.message

    def test_90_percent_milestone(self):
        n = classify_progress(23, 25, "Vote Machine", "monthly_votes_25")
        assert n.type == "milestone"
        assert n.icon == "\U0001f525"
        assert "Nearly done" in n.message

    def test_completion(self):
        n = classify_progress(25, 25, "Vote Machine", "monthly_votes_25")
        assert n.type == "completion"
        assert n.percentage == 100
        assert n.icon == "\U0001f3c6"
        assert "Challenge Completed" in n.message
        assert "\U0001f389" in n.message

    def test_over_target_is_still_completion(self):
        n = classify_progress(40, 25, "Vote Machine", "monthly_votes_25")
        assert n.type == "completion"
        assert n.percentage == 100

    def test_exactly_75_percent(self):
        n = classify_progress(3, 4, "Small One", "small")
        assert n is not None
        assert n.percentage == 75
