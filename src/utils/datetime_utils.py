"""
Datetime utilities for consistent timezone handling across the application.

All stored timestamps are timezone-aware and normalized to UTC. Slot
calculation happens in the clinic's local timezone, configured through
SchedulingSettings.clinic_timezone.
"""

import logging
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def get_timezone(name: str) -> tzinfo:
    """
    Resolve an IANA timezone name.

    "UTC" resolves without the system tz database.

    Raises:
        ValueError: If the timezone name is unknown
    """
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except Exception as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def utc_now() -> datetime:
    """Get the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime], tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware.

    Naive datetimes are assumed to already be expressed in `tz`.

    Args:
        dt: Datetime to localize
        tz: Timezone assumed for naive input

    Returns:
        Timezone-aware datetime, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt


def to_utc(dt: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Convert a datetime to UTC, treating naive input as `tz` local time."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(timezone.utc)


def combine_local(day: date, slot: time, tz: tzinfo) -> datetime:
    """Combine a local date and time-of-day into an aware datetime in `tz`."""
    return datetime.combine(day, slot, tzinfo=tz)


def format_datetime(dt: datetime, tz: tzinfo = timezone.utc) -> str:
    """
    Format datetime for user-facing messages.

    Formats as "Mon 15 Jan 2024, 10:00 AM" in the given timezone.
    """
    local_datetime = ensure_aware(dt)
    if local_datetime is None:
        raise ValueError("Cannot format None datetime")
    local_datetime = local_datetime.astimezone(tz)

    hour = local_datetime.hour % 12 or 12
    period = "AM" if local_datetime.hour < 12 else "PM"
    return f"{local_datetime.strftime('%a %d %b %Y')}, {hour}:{local_datetime.minute:02d} {period}"


def format_time(slot: time) -> str:
    """Format a time-of-day as HH:MM."""
    return f"{slot.hour:02d}:{slot.minute:02d}"


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD format.

    Raises:
        ValueError: If the string is not a valid date
    """
    return datetime.strptime(date_str, "%Y-%m-%d").date()
