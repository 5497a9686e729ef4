"""Calendar-day helpers for completion tracking.

A "day" is always the caller's local calendar date; boundaries are turned
into UTC instants before they reach the database.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habitcircle.errors import INVALID_TIMEZONE, ValidationError


def resolve_timezone(name: str) -> tzinfo:
    """Turn an IANA zone name into a tzinfo. ``UTC`` never needs tz data."""
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        # "America" or "Etc" name a directory of the tz database, not a zone.
        msg = f"Unknown time zone: {name}"
        raise ValidationError(msg, code=INVALID_TIMEZONE) from e


def local_today(tz: tzinfo, now: datetime | None = None) -> date:
    """The calendar date in ``tz`` at ``now`` (default: current time)."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(tz).date()


def start_of_day(day: date, tz: tzinfo) -> datetime:
    """Local midnight of ``day`` in ``tz``, as a UTC datetime."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)

