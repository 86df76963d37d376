"""
HybridX API - Date helpers.

Calendar dates (``datetime.date``) are the unit of scheduling. Instants are
timezone-aware UTC datetimes. MongoDB hands back naive UTC datetimes, so
everything read from the store goes through ``as_utc``.
"""

from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from hybridx.utils.errors import ValidationError


def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_calendar_date(value: Union[date, datetime]) -> date:
    """
    Normalize a date or datetime to its calendar day.

    Datetimes keep their own timezone (local to whoever produced them), so
    time-of-day never moves the day.
    """
    if isinstance(value, datetime):
        return value.date()
    return value


def day_start(value: Union[date, datetime]) -> datetime:
    """Midnight datetime used as the storage key for a calendar date."""
    return datetime.combine(to_calendar_date(value), time.min)


def local_wall_time(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Naive wall-clock time of an instant in an IANA timezone (UTC when unset).

    Raises:
        ValidationError: unknown timezone name.
    """
    instant = as_utc(value)
    if not tz_name:
        return instant.replace(tzinfo=None)
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone '{tz_name}'")
    return instant.astimezone(zone).replace(tzinfo=None)
