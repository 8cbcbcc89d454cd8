"""Calendar and rounding helpers shared by the progression services."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from parkrank.config import get_settings


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (2.5 -> 3), unlike banker's round()."""
    return math.floor(value + 0.5)


def get_calendar_tz(name: str) -> tzinfo:
    """Resolve the configured calendar timezone."""
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_today(tz: tzinfo, now: datetime | None = None) -> date:
    """Calendar date of ``now`` in ``tz``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return ensure_utc(now).astimezone(tz).date()


def get_monday(d: date) -> date:
    """Get the Monday of the ISO week containing d."""
    return d - timedelta(days=d.weekday())


def get_week_boundaries(tz: tzinfo, now: datetime | None = None) -> tuple[datetime, datetime]:
    """(Monday 00:00, next Monday 00:00) in ``tz`` for the week containing ``now``, as UTC."""
    monday = get_monday(local_today(tz, now))
    start = datetime.combine(monday, time.min, tzinfo=tz)
    end = datetime.combine(monday + timedelta(days=7), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def get_next_week_boundary(tz: tzinfo, now: datetime | None = None) -> datetime:
    """The first Monday 00:00 in ``tz`` strictly after ``now``, as UTC."""
    _, end = get_week_boundaries(tz, now)
    return end


def get_configured_tz() -> tzinfo:
    """Calendar timezone from application settings."""
    return get_calendar_tz(get_settings().calendar_timezone)
