"""
Reward Economy Rules

Pure functions mapping (streak length, verification, completion) to the
daily action quota and the point reward per action.

Quota (verified users), by streak day:
- Day 1-2: 3 actions        - Day 14-20: 25 actions
- Day 3-4: 5 actions        - Day 21-29: 35 actions
- Day 5-6: 8 actions        - Day 30-59: 50 actions
- Day 7-13: 15 actions      - Day 60-89: 80 actions, Day 90+: 100 actions
Unverified users get a single teaser action per day.

Reward per action:
    floor(base_reward * multiplier * (1 if completed else skip_penalty))
    multiplier = (20 if verified else 1) * 2 ** (streak // 7)
"""

from bisect import bisect_right
from decimal import Decimal
from fractions import Fraction
from typing import Optional, Union
import logging

from src.config import EconomyConfig
from src.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = EconomyConfig()

Number = Union[int, Decimal]


def require_non_negative_int(value: int, field: str) -> int:
    """
    Validate a count-like input

    Raises:
        InvalidArgumentError: If value is not an int (bools included) or is negative
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(
            message=f"{field} must be an integer, got {type(value).__name__}",
            field=field,
            value=value,
        )
    if value < 0:
        raise InvalidArgumentError(
            message=f"{field} cannot be negative",
            field=field,
            value=value,
        )
    return value


def require_non_negative_amount(value: Number, field: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise InvalidArgumentError(
            message=f"{field} must be an int or Decimal, got {type(value).__name__}",
            field=field,
            value=value,
        )
    amount = Decimal(value)
    if not amount.is_finite() or amount < 0:
        raise InvalidArgumentError(
            message=f"{field} must be a finite non-negative amount",
            field=field,
            value=str(value),
        )
    return amount


def lookup_threshold(table: dict[int, int], key: int, default: int) -> int:
    """
    Value of the largest threshold <= key, or `default` below the smallest

    Args:
        table: Threshold -> value mapping (any order)
        key: Value to look up
        default: Returned when key is below every threshold

    Example:
        lookup_threshold({1: 3, 7: 15}, 10, 3) -> 15
    """
    thresholds = sorted(table)
    index = bisect_right(thresholds, key)
    if index == 0:
        return default
    return table[thresholds[index - 1]]


def daily_quota(streak_length: int, verified: bool, config: Optional[EconomyConfig] = None) -> int:
    """
    Maximum rewarded actions per day

    Args:
        streak_length: Current streak in days
        verified: Whether the identity provider has verified the user
        config: Economy tunables (defaults when omitted)

    Returns:
        Daily quota, non-decreasing in streak_length
    """
    config = config or _DEFAULT_CONFIG
    require_non_negative_int(streak_length, "streak_length")

    if not verified:
        return config.unverified_daily_actions

    quota = lookup_threshold(config.quota_thresholds, streak_length, config.base_quota_day1)
    return min(quota, config.max_daily_actions)


def reward_multiplier(streak_length: int, verified: bool, config: Optional[EconomyConfig] = None) -> int:
    """
    Verification bonus times a permanent x2 for every full streak interval

    Python integers are unbounded, so multi-year streaks cannot overflow.
    """
    config = config or _DEFAULT_CONFIG
    require_non_negative_int(streak_length, "streak_length")

    base = config.verified_multiplier if verified else config.unverified_multiplier
    doublings = streak_length // config.streak_multiplier_interval
    return base * 2 ** doublings


def action_reward(
    streak_length: int,
    verified: bool,
    completed_fully: bool,
    config: Optional[EconomyConfig] = None
) -> int:
    """
    Points for one rewarded action

    Callers pass completed_fully=False only when the minimum engagement
    time (enforced by the ad player) was met before the user skipped.

    Returns:
        floor(base_reward * multiplier * penalty) using exact arithmetic
    """
    config = config or _DEFAULT_CONFIG
    multiplier = reward_multiplier(streak_length, verified, config)
    penalty = Fraction(1) if completed_fully else Fraction(config.skip_penalty_factor)

    reward = Fraction(config.base_reward_per_action) * multiplier * penalty
    return int(reward)  # floor; reward is never negative


def points_to_currency(points: int, config: Optional[EconomyConfig] = None) -> Decimal:
    """
    Convert points to currency units (10,000 points = 1 WLD by default)

    Example:
        points_to_currency(100) -> Decimal("0.01")
    """
    config = config or _DEFAULT_CONFIG
    require_non_negative_int(points, "points")
    return Decimal(points) / Decimal(config.points_per_currency_unit)


def currency_to_points(amount: Number, config: Optional[EconomyConfig] = None) -> int:
    """Points needed for a currency amount, floored to whole points"""
    config = config or _DEFAULT_CONFIG
    value = require_non_negative_amount(amount, "amount")
    return int(value * config.points_per_currency_unit)


def developer_fee(amount: Number, config: Optional[EconomyConfig] = None) -> Decimal:
    """Developer fee withheld from a claim amount"""
    config = config or _DEFAULT_CONFIG
    value = require_non_negative_amount(amount, "amount")
    return value * config.developer_fee_rate


def meets_minimum_claim(points: int, config: Optional[EconomyConfig] = None) -> bool:
    """True when the points convert to at least the minimum claimable amount"""
    config = config or _DEFAULT_CONFIG
    return points_to_currency(points, config) >= config.min_claim_currency
