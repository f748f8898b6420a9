"""
Read-side projections of a progress record

Everything here is a pure derivation of (record, now, config); nothing is
stored or cached.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from src.config import EconomyConfig
from src.gamification import economy, streak_system
from src.models.progress import CalendarDay, UserProgress
from src.utils.datetime_helpers import local_date

_DEFAULT_CONFIG = EconomyConfig()


class ProgressSummary(BaseModel):
    """Everything the dashboard shows for one user"""
    identity: str
    verified: bool
    current_streak: int
    longest_streak: int
    streak_level: int
    days_until_next_level: int
    streak_progress_percent: float
    acted_today: bool
    expiry_warning: bool
    daily_quota: int
    actions_today: int
    actions_remaining_today: int
    next_action_reward: int
    reward_multiplier: int
    total_actions: int
    total_points: int
    claimed_points: int
    available_balance: int
    claimable_currency: Decimal
    can_claim: bool
    status_message: str
    referral_code: str
    referral_count: int
    achievements: list[str]
    calendar: list[CalendarDay]


def available_balance(record: UserProgress) -> int:
    """Points earned but not yet claimed"""
    return record.total_points - record.claimed_points


def actions_today(record: UserProgress, now: datetime, config: Optional[EconomyConfig] = None) -> int:
    """Actions on the current reference day; 0 once the day has rolled over"""
    config = config or _DEFAULT_CONFIG
    if not streak_system.has_acted_today(record.last_action_at, now, config.timezone):
        return 0
    return record.actions_today


def daily_quota_for(record: UserProgress, config: Optional[EconomyConfig] = None) -> int:
    config = config or _DEFAULT_CONFIG
    return economy.daily_quota(record.current_streak, record.verified, config)


def actions_remaining_today(record: UserProgress, now: datetime, config: Optional[EconomyConfig] = None) -> int:
    config = config or _DEFAULT_CONFIG
    return max(0, daily_quota_for(record, config) - actions_today(record, now, config))


def next_action_reward(
    record: UserProgress,
    config: Optional[EconomyConfig] = None,
    completed_fully: bool = True
) -> int:
    config = config or _DEFAULT_CONFIG
    return economy.action_reward(record.current_streak, record.verified, completed_fully, config)


def claimable_currency(record: UserProgress, config: Optional[EconomyConfig] = None) -> Decimal:
    config = config or _DEFAULT_CONFIG
    return economy.points_to_currency(available_balance(record), config)


def calendar(
    record: UserProgress,
    now: datetime,
    config: Optional[EconomyConfig] = None,
    window_days: Optional[int] = None
) -> list[CalendarDay]:
    config = config or _DEFAULT_CONFIG
    return streak_system.build_calendar(
        record.activity_history,
        window_days if window_days is not None else config.calendar_window_days,
        local_date(now, config.timezone),
    )


def progress_summary(record: UserProgress, now: datetime, config: Optional[EconomyConfig] = None) -> ProgressSummary:
    """
    Full dashboard projection

    Callers should pass a record that went through start_session first so a
    broken streak is already reset.
    """
    config = config or _DEFAULT_CONFIG
    tz = config.timezone
    streak = record.current_streak
    quota = daily_quota_for(record, config)
    today_count = actions_today(record, now, config)
    balance = available_balance(record)

    return ProgressSummary(
        identity=record.identity,
        verified=record.verified,
        current_streak=streak,
        longest_streak=record.longest_streak,
        streak_level=streak_system.streak_level(streak),
        days_until_next_level=streak_system.days_until_next_level(streak),
        streak_progress_percent=streak_system.streak_progress_percent(streak),
        acted_today=streak_system.has_acted_today(record.last_action_at, now, tz),
        expiry_warning=streak_system.needs_expiry_warning(
            record.last_action_at, now, config.expiry_warning_hours, tz
        ),
        daily_quota=quota,
        actions_today=today_count,
        actions_remaining_today=max(0, quota - today_count),
        next_action_reward=next_action_reward(record, config),
        reward_multiplier=economy.reward_multiplier(streak, record.verified, config),
        total_actions=record.total_actions,
        total_points=record.total_points,
        claimed_points=record.claimed_points,
        available_balance=balance,
        claimable_currency=economy.points_to_currency(balance, config),
        can_claim=balance > 0 and economy.meets_minimum_claim(balance, config),
        status_message=streak_system.streak_status_message(streak, today_count, quota),
        referral_code=record.referral.code,
        referral_count=len(record.referral.referrals),
        achievements=[a.id for a in record.achievements],
        calendar=calendar(record, now, config),
    )
