"""
Streak Evaluator

Derives streak state from a sparse, day-indexed activity history:
- Current streak length (consecutive active calendar days ending today)
- Breakage (a full calendar day with zero actions)
- Levels (every 7 streak days) and progress within a level
- One-time milestone bonuses
- End-of-day expiry warnings
- Calendar view for the trailing window

Every function is pure: "now"/"today" and the reference time zone are
passed in. Contiguity is measured in calendar days of the reference zone,
never in elapsed hours.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional
import logging

from src.config import DEFAULT_MILESTONE_BONUSES
from src.exceptions import InvalidArgumentError
from src.gamification.economy import require_non_negative_int
from src.models.progress import ActivityEntry, CalendarDay
from src.utils.datetime_helpers import (
    TzLike,
    calendar_days_between,
    hours_until_end_of_day,
    is_same_day,
    trailing_days,
)

logger = logging.getLogger(__name__)

DAYS_PER_LEVEL = 7


def current_streak_from_history(history: Iterable[ActivityEntry], today: date) -> int:
    """
    Count consecutive active days walking backward from today

    A day counts only if the history holds an entry for that exact date with
    at least one completed action; the walk stops at the first day without
    one. If today has no qualifying entry the streak is 0.

    Args:
        history: Activity entries in any order
        today: Reference-zone date to start from

    Returns:
        Streak length in days
    """
    active_days = {entry.day for entry in history if entry.actions_completed > 0}

    streak = 0
    check_day = today
    while check_day in active_days:
        streak += 1
        check_day -= timedelta(days=1)

    return streak


def is_streak_broken(last_action_at: Optional[datetime], now: datetime, tz: TzLike = None) -> bool:
    """
    True iff at least one full calendar day without actions has elapsed

    Yesterday (exactly one calendar day back) is the normal gap between
    consecutive active days and is NOT broken. No last action means there
    is no streak to break.
    """
    if last_action_at is None:
        return False
    return calendar_days_between(last_action_at, now, tz) > 1


def has_acted_today(last_action_at: Optional[datetime], now: datetime, tz: TzLike = None) -> bool:
    """True iff the last action falls on the same reference-zone day as now"""
    return is_same_day(last_action_at, now, tz)


def streak_level(streak_length: int) -> int:
    """Every 7 streak days is a new level"""
    require_non_negative_int(streak_length, "streak_length")
    return streak_length // DAYS_PER_LEVEL


def next_level_threshold(level: int) -> int:
    """Streak length at which the level after `level` starts"""
    require_non_negative_int(level, "level")
    return (level + 1) * DAYS_PER_LEVEL


def days_until_next_level(streak_length: int) -> int:
    return next_level_threshold(streak_level(streak_length)) - streak_length


def streak_progress_percent(streak_length: int) -> float:
    """
    Progress through the current level, 0-100

    Example:
        streak_progress_percent(10) -> 42.857... (3 of 7 days into level 1)
    """
    level = streak_level(streak_length)
    level_start = level * DAYS_PER_LEVEL
    level_end = next_level_threshold(level)
    progress = (streak_length - level_start) / (level_end - level_start) * 100
    return min(100.0, max(0.0, progress))


def is_milestone(streak_length: int, milestones: Optional[dict[int, int]] = None) -> bool:
    require_non_negative_int(streak_length, "streak_length")
    return streak_length in (milestones if milestones is not None else DEFAULT_MILESTONE_BONUSES)


def milestone_bonus(streak_length: int, milestones: Optional[dict[int, int]] = None) -> int:
    """
    One-time bonus for landing exactly on a milestone day, else 0

    The ledger grants it only when the streak transitions onto the
    milestone, so repeated evaluation never re-grants it.
    """
    require_non_negative_int(streak_length, "streak_length")
    table = milestones if milestones is not None else DEFAULT_MILESTONE_BONUSES
    return table.get(streak_length, 0)


def needs_expiry_warning(
    last_action_at: Optional[datetime],
    now: datetime,
    hours_threshold: float,
    tz: TzLike = None
) -> bool:
    """
    Warn when the streak is about to lapse

    True iff fewer than `hours_threshold` hours remain in the reference day
    and the user has not acted today. Users with no action yet have no
    streak to lose and are never warned.
    """
    if isinstance(hours_threshold, bool) or hours_threshold < 0:
        raise InvalidArgumentError(
            message="hours_threshold cannot be negative",
            field="hours_threshold",
            value=hours_threshold,
        )
    if last_action_at is None:
        return False

    return (
        hours_until_end_of_day(now, tz) < hours_threshold
        and not has_acted_today(last_action_at, now, tz)
    )


def build_calendar(history: Iterable[ActivityEntry], window_days: int, today: date) -> list[CalendarDay]:
    """
    One calendar cell per day of the trailing window, oldest first

    Days without a history entry render as zero activity.

    Args:
        history: Activity entries in any order
        window_days: Number of days to show (e.g. 30)
        today: Last day of the window

    Returns:
        List of CalendarDay of length window_days
    """
    require_non_negative_int(window_days, "window_days")
    by_day = {entry.day: entry.actions_completed for entry in history}

    calendar = []
    for day in trailing_days(today, window_days):
        actions = by_day.get(day, 0)
        calendar.append(CalendarDay(
            day=day,
            actions_completed=actions,
            was_active=actions > 0,
            is_today=day == today,
        ))

    return calendar


def streak_status_message(streak_length: int, actions_today: int, quota: int) -> str:
    """
    One-line status for the presentation layer

    Returns:
        Call to action before the first action, progress while under quota,
        or a come-back-tomorrow message once the quota is used up
    """
    require_non_negative_int(streak_length, "streak_length")
    require_non_negative_int(actions_today, "actions_today")

    if actions_today == 0:
        return f"Day {streak_length + 1}! Watch your first ad now 🔥"
    if actions_today < quota:
        return f"{actions_today}/{quota} ads today! Keep earning 💰"
    return f"All done! Come back tomorrow for day {streak_length + 1} 🎉"
