"""Unit tests for Datetime Helpers (src/utils/datetime_helpers.py)"""
import pytest
from datetime import datetime, date, timezone, timedelta
from zoneinfo import ZoneInfo

from src.utils.datetime_helpers import (
    now_utc,
    ensure_aware,
    local_date,
    calendar_days_between,
    is_same_day,
    end_of_day,
    hours_until_end_of_day,
    trailing_days,
)


# ============================================================================
# UTC Time Tests
# ============================================================================

def test_now_utc_returns_utc_time():
    """Test that now_utc returns an aware UTC datetime"""
    result = now_utc()

    assert isinstance(result, datetime)
    assert result.utcoffset() == timedelta(0)


def test_now_utc_is_current():
    """Test that now_utc returns current time"""
    before = datetime.now(timezone.utc)
    result = now_utc()
    after = datetime.now(timezone.utc)

    assert before <= result <= after


def test_ensure_aware_rejects_naive():
    with pytest.raises(ValueError):
        ensure_aware(datetime(2024, 1, 1, 12, 0))


# ============================================================================
# Calendar Day Tests
# ============================================================================

def test_local_date_in_reference_zone():
    """Test the same instant falls on different dates per zone"""
    instant = datetime(2024, 3, 15, 23, 30, tzinfo=timezone.utc)

    assert local_date(instant) == date(2024, 3, 15)
    assert local_date(instant, "Asia/Tokyo") == date(2024, 3, 16)
    assert local_date(instant, ZoneInfo("America/Los_Angeles")) == date(2024, 3, 15)


def test_calendar_days_between_ignores_hours():
    """Test one minute across midnight is one calendar day"""
    earlier = datetime(2024, 3, 14, 23, 59, tzinfo=timezone.utc)
    later = datetime(2024, 3, 15, 0, 0, tzinfo=timezone.utc)

    assert calendar_days_between(earlier, later) == 1
    assert calendar_days_between(later, later + timedelta(hours=23)) == 0


def test_is_same_day():
    a = datetime(2024, 3, 15, 1, 0, tzinfo=timezone.utc)
    b = datetime(2024, 3, 15, 22, 0, tzinfo=timezone.utc)

    assert is_same_day(a, b) is True
    assert is_same_day(a, b, "America/New_York") is False
    assert is_same_day(None, b) is False


# ============================================================================
# End of Day Tests
# ============================================================================

def test_end_of_day_is_next_midnight():
    dt = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

    result = end_of_day(dt)

    assert result == datetime(2024, 3, 16, 0, 0, tzinfo=timezone.utc)


def test_hours_until_end_of_day():
    dt = datetime(2024, 3, 15, 22, 30, tzinfo=timezone.utc)
    assert hours_until_end_of_day(dt) == pytest.approx(1.5)


def test_hours_until_end_of_day_across_dst_change():
    """Test the 23-hour spring-forward day in New York"""
    # 2024-03-10 00:00 EST == 05:00 UTC; the day is only 23 hours long
    start_of_day = datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc)

    assert hours_until_end_of_day(start_of_day, "America/New_York") == pytest.approx(23)


# ============================================================================
# Window Tests
# ============================================================================

def test_trailing_days():
    assert trailing_days(date(2024, 1, 3), 3) == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
    assert trailing_days(date(2024, 1, 3), 0) == []
