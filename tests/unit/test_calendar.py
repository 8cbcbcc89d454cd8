"""Calendar helpers: local dates and Monday week boundaries."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from parkrank.utils import (
    ensure_utc,
    get_calendar_tz,
    get_monday,
    get_next_week_boundary,
    get_week_boundaries,
    local_today,
)


class TestGetMonday:
    def test_monday_returns_itself(self):
        assert get_monday(date(2026, 3, 2)) == date(2026, 3, 2)

    def test_sunday_returns_previous_monday(self):
        assert get_monday(date(2026, 3, 8)) == date(2026, 3, 2)


class TestWeekBoundaries:
    def test_utc_week(self):
        now = datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)  # Wednesday
        start, end = get_week_boundaries(timezone.utc, now)
        assert start == datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 9, tzinfo=timezone.utc)

    def test_monday_midnight_starts_new_week(self):
        now = datetime(2026, 3, 9, 0, 0, tzinfo=timezone.utc)
        start, _ = get_week_boundaries(timezone.utc, now)
        assert start == now

    def test_sunday_last_second_is_same_week(self):
        now = datetime(2026, 3, 8, 23, 59, 59, tzinfo=timezone.utc)
        start, _ = get_week_boundaries(timezone.utc, now)
        assert start == datetime(2026, 3, 2, tzinfo=timezone.utc)

    def test_boundaries_follow_calendar_timezone(self):
        tz = ZoneInfo("America/Los_Angeles")
        # Monday 03:00 UTC is still Sunday evening in Los Angeles.
        now = datetime(2026, 3, 9, 3, 0, tzinfo=timezone.utc)
        start, end = get_week_boundaries(tz, now)
        assert start.astimezone(tz) == datetime(2026, 3, 2, tzinfo=tz)
        # DST starts inside this week, so the window is 167 hours long.
        assert end.astimezone(tz) == datetime(2026, 3, 9, tzinfo=tz)
        assert end - start == timedelta(days=7, hours=-1)
        assert start.tzinfo == timezone.utc

    def test_next_boundary_is_strictly_after_now(self):
        now = datetime(2026, 3, 9, 0, 0, tzinfo=timezone.utc)
        assert get_next_week_boundary(timezone.utc, now) == datetime(2026, 3, 16, tzinfo=timezone.utc)


class TestLocalToday:
    def test_local_date_differs_from_utc(self):
        now = datetime(2026, 3, 9, 3, 0, tzinfo=timezone.utc)
        assert local_today(ZoneInfo("America/New_York"), now) == date(2026, 3, 8)
        assert local_today(timezone.utc, now) == date(2026, 3, 9)

    def test_get_calendar_tz_utc(self):
        assert get_calendar_tz("UTC") is timezone.utc
        assert get_calendar_tz("Europe/Berlin") == ZoneInfo("Europe/Berlin")

    def test_ensure_utc_attaches_tz_to_naive(self):
        naive = datetime(2026, 3, 9, 12, 0)
        assert ensure_utc(naive) == datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc)
