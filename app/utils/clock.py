"""
Eswatini MSME Registry - Time Helpers

All timestamps are UTC. Some drivers (SQLite) hand back naive datetimes,
so values read from the database go through as_utc() before comparison.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def previous_day(today: date) -> date:
    return today - timedelta(days=1)


def previous_month(today: date) -> tuple[int, int]:
    """(year, month) of the calendar month before `today`."""
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def local_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of `moment` in the registry's operating timezone."""
    return as_utc(moment).astimezone(ZoneInfo(tz_name)).date()
