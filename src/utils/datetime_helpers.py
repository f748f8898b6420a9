"""
Standardized Date/Time Handling Utilities

All day-boundary math in the reward engine goes through this module so that
streaks, quotas and calendars agree on what "today" means.

CRITICAL RULES:
- Every timestamp is timezone-aware; naive datetimes are rejected
- Calendar days are computed in ONE reference time zone (default UTC),
  never in the device's local zone
- "Now" is always passed in by the caller; only now_utc() reads the clock
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"

TzLike = Union[str, ZoneInfo, None]


def _zone(tz: TzLike) -> ZoneInfo:
    if tz is None:
        return ZoneInfo(DEFAULT_TIMEZONE)
    if isinstance(tz, ZoneInfo):
        return tz
    return ZoneInfo(tz)


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(ZoneInfo("UTC"))


def ensure_aware(dt: datetime) -> datetime:
    """
    Reject naive datetimes

    Raises:
        ValueError: If dt carries no tzinfo
    """
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValueError(f"Naive datetime not allowed: {dt!r}")
    return dt


def local_date(dt: datetime, tz: TzLike = None) -> date:
    """
    Calendar date of an instant in the reference time zone

    Args:
        dt: Timezone-aware datetime
        tz: Reference zone (name or ZoneInfo), UTC when omitted

    Returns:
        The date the instant falls on in the reference zone
    """
    return ensure_aware(dt).astimezone(_zone(tz)).date()


def calendar_days_between(earlier: datetime, later: datetime, tz: TzLike = None) -> int:
    """
    Difference in calendar days (not elapsed 24h periods)

    23:59 yesterday and 00:01 today are one calendar day apart.
    """
    return (local_date(later, tz) - local_date(earlier, tz)).days


def is_same_day(a: Optional[datetime], b: datetime, tz: TzLike = None) -> bool:
    """True when both instants fall on the same reference-zone date"""
    if a is None:
        return False
    return local_date(a, tz) == local_date(b, tz)


def end_of_day(dt: datetime, tz: TzLike = None) -> datetime:
    """
    Start of the next reference-zone day, as an aware datetime

    Uses the next midnight rather than 23:59:59.999 so that DST
    transitions are handled by zoneinfo.
    """
    zone = _zone(tz)
    next_day = local_date(dt, zone) + timedelta(days=1)
    return datetime.combine(next_day, time.min, tzinfo=zone)


def hours_until_end_of_day(dt: datetime, tz: TzLike = None) -> float:
    """Hours remaining until the reference-zone day rolls over"""
    # Subtract in UTC; same-zone aware arithmetic ignores DST offset changes
    remaining = end_of_day(dt, tz).astimezone(ZoneInfo("UTC")) - ensure_aware(dt).astimezone(ZoneInfo("UTC"))
    return remaining.total_seconds() / 3600


def trailing_days(today: date, window_days: int) -> list[date]:
    """
    The last `window_days` dates ending at `today`, oldest first

    Example:
        trailing_days(date(2024, 1, 3), 3) -> [Jan 1, Jan 2, Jan 3]
    """
    return [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]
