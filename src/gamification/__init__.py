"""
Reward economy and streak engine for AdStreak

This package implements the deterministic core of the watch-to-earn loop:
- Economy rules (daily quota, reward multipliers, point conversion)
- Streak evaluation over the daily activity history
- Achievement catalog
- Progress ledger (pure record transformations)
- Read-side projections for the presentation layer
"""

from src.gamification.economy import (
    daily_quota,
    reward_multiplier,
    action_reward,
    points_to_currency,
)
from src.gamification.streak_system import (
    current_streak_from_history,
    is_streak_broken,
    has_acted_today,
    build_calendar,
)
from src.gamification.ledger import (
    new_progress,
    record_action,
    record_claim,
    reverse_claim,
    unlock_achievement,
    apply_referral_bonus,
    add_referral,
    reset_streak_if_broken,
    start_session,
    mark_verified,
)
from src.gamification.read_api import available_balance, progress_summary

__all__ = [
    "daily_quota",
    "reward_multiplier",
    "action_reward",
    "points_to_currency",
    "current_streak_from_history",
    "is_streak_broken",
    "has_acted_today",
    "build_calendar",
    "new_progress",
    "record_action",
    "record_claim",
    "reverse_claim",
    "unlock_achievement",
    "apply_referral_bonus",
    "add_referral",
    "reset_streak_if_broken",
    "start_session",
    "mark_verified",
    "available_balance",
    "progress_summary",
]
