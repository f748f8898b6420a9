"""
Progress Ledger

Pure transformations of a UserProgress record. Each operation takes the
current record and returns a new, fully validated one (or raises before
producing anything); persisting the result is the caller's job.

Operations:
- new_progress: record created on first contact
- record_action: the only way gameplay increases total_points
- record_claim / reverse_claim: the only ways claimed_points changes
- unlock_achievement, apply_referral_bonus, add_referral: idempotent credits
- reset_streak_if_broken, start_session, mark_verified
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
import logging

from src.config import EconomyConfig
from src.exceptions import InsufficientBalanceError, InvalidArgumentError
from src.gamification.achievement_system import get_achievement
from src.gamification.economy import require_non_negative_amount, require_non_negative_int
from src.gamification.streak_system import (
    current_streak_from_history,
    has_acted_today,
    is_streak_broken,
    milestone_bonus,
)
from src.models.progress import (
    ActivityEntry,
    ProgressPatch,
    ReferralState,
    Transaction,
    TransactionKind,
    UnlockedAchievement,
    UserProgress,
    apply_patch,
)
from src.utils.datetime_helpers import local_date

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = EconomyConfig()


# ==========================================
# Helpers
# ==========================================

def _require_aware(now: datetime) -> datetime:
    if now.tzinfo is None or now.tzinfo.utcoffset(now) is None:
        raise InvalidArgumentError(
            message="Timestamps must be timezone-aware",
            field="now",
            value=now.isoformat(),
        )
    return now


def _require_identity(identity: str, field: str) -> str:
    if not isinstance(identity, str) or not identity.strip():
        raise InvalidArgumentError(message=f"{field} cannot be empty", field=field, value=identity)
    return identity


def referral_code_for(identity: str) -> str:
    """Deterministic referral code: last 8 characters of the identity, upper-cased"""
    return identity[-8:].upper()


def _new_transaction(
    record: UserProgress,
    kind: TransactionKind,
    amount: Decimal,
    points: int,
    description: str,
    now: datetime,
    external_ref: Optional[str] = None,
    reverses: Optional[str] = None,
) -> Transaction:
    # Ids are sequential per record, so replaying an operation on the same
    # input record yields an identical result
    return Transaction(
        id=f"{kind.value}_{len(record.transactions) + 1:06d}",
        created_at=now,
        kind=kind,
        amount=amount,
        points=points,
        description=description,
        external_ref=external_ref,
        reverses=reverses,
    )


def _upsert_today(history: tuple[ActivityEntry, ...], today: date) -> tuple[ActivityEntry, ...]:
    entries = {entry.day: entry for entry in history}
    previous = entries.get(today)
    count = previous.actions_completed + 1 if previous else 1
    entries[today] = ActivityEntry(day=today, actions_completed=count)
    return tuple(sorted(entries.values(), key=lambda entry: entry.day))


def prune_history(
    history: tuple[ActivityEntry, ...],
    today: date,
    retention_days: int
) -> tuple[ActivityEntry, ...]:
    """Keep only the trailing `retention_days` days ending today"""
    cutoff = today - timedelta(days=retention_days - 1)
    return tuple(entry for entry in history if entry.day >= cutoff)


def derive_streak(
    record: UserProgress,
    history: tuple[ActivityEntry, ...],
    today: date,
    config: EconomyConfig
) -> int:
    """
    Streak after a history mutation

    The walk over history cannot see past the retention window. When the run
    fills the whole window, it continues the cached streak instead (+1 when
    the previous action was yesterday).
    """
    derived = current_streak_from_history(history, today)
    if derived < config.history_retention_days or record.last_action_at is None:
        return derived

    gap = (today - local_date(record.last_action_at, config.timezone)).days
    if gap == 0:
        return max(derived, record.current_streak)
    if gap == 1:
        return max(derived, record.current_streak + 1)
    return derived


# ==========================================
# Operations
# ==========================================

def new_progress(identity: str, now: datetime) -> UserProgress:
    """Fresh record for a user seen for the first time"""
    _require_identity(identity, "identity")
    _require_aware(now)

    return UserProgress(
        identity=identity,
        referral=ReferralState(code=referral_code_for(identity)),
        created_at=now,
        last_seen_at=now,
    )


def record_action(
    record: UserProgress,
    points_earned: int,
    now: datetime,
    config: Optional[EconomyConfig] = None
) -> UserProgress:
    """
    Record one completed rewarded action

    Logic:
    - Increment today's history entry (creating it if needed)
    - actions_today restarts at 1 on a new calendar day
    - Add points_earned to total_points
    - Recompute current_streak from history, update longest_streak
    - Grant the milestone bonus when the streak lands on a milestone day
    - Prune history older than the retention window

    Must be called exactly once per completed action.
    """
    config = config or _DEFAULT_CONFIG
    require_non_negative_int(points_earned, "points_earned")
    _require_aware(now)

    tz = config.timezone
    today = local_date(now, tz)

    history = _upsert_today(record.activity_history, today)
    new_streak = derive_streak(record, history, today, config)
    history = prune_history(history, today, config.history_retention_days)

    actions_today = record.actions_today + 1 if has_acted_today(record.last_action_at, now, tz) else 1
    total_points = record.total_points + points_earned
    transactions = record.transactions

    bonus = 0
    if new_streak != record.current_streak:
        bonus = milestone_bonus(new_streak, config.milestone_bonuses)
    if bonus:
        transactions = transactions + (_new_transaction(
            record,
            TransactionKind.MILESTONE,
            amount=Decimal(bonus),
            points=bonus,
            description=f"{new_streak}-day streak milestone bonus",
            now=now,
        ),)
        total_points += bonus
        logger.info(f"User {record.identity} reached {new_streak}-day milestone: +{bonus} points")

    updated = apply_patch(record, ProgressPatch(
        activity_history=history,
        actions_today=actions_today,
        total_actions=record.total_actions + 1,
        total_points=total_points,
        last_action_at=now,
        current_streak=new_streak,
        longest_streak=max(record.longest_streak, new_streak),
        transactions=transactions,
        last_seen_at=now,
    ))

    logger.info(
        f"Recorded action for user {record.identity}: +{points_earned} points, "
        f"streak {record.current_streak} → {new_streak}, today {actions_today}"
    )
    return updated


def record_claim(
    record: UserProgress,
    points_to_claim: int,
    currency_amount: Decimal,
    external_ref: Optional[str],
    now: datetime
) -> UserProgress:
    """
    Convert points into a currency claim

    Raises:
        InvalidArgumentError: If points_to_claim is not positive or the amount is negative
        InsufficientBalanceError: If points_to_claim exceeds total - claimed
    """
    require_non_negative_int(points_to_claim, "points_to_claim")
    if points_to_claim == 0:
        raise InvalidArgumentError(message="Cannot claim zero points", field="points_to_claim", value=0)
    amount = require_non_negative_amount(currency_amount, "currency_amount")
    _require_aware(now)

    available = record.available_points
    if points_to_claim > available:
        raise InsufficientBalanceError(
            message=f"Claim of {points_to_claim} points exceeds available balance of {available}",
            requested=points_to_claim,
            available=available,
            user_id=record.identity,
            operation="record_claim",
        )

    transaction = _new_transaction(
        record,
        TransactionKind.CLAIM,
        amount=amount,
        points=points_to_claim,
        description=f"Claimed {points_to_claim} points → {amount:.4f} WLD",
        now=now,
        external_ref=external_ref,
    )

    updated = apply_patch(record, ProgressPatch(
        claimed_points=record.claimed_points + points_to_claim,
        transactions=record.transactions + (transaction,),
        last_seen_at=now,
    ))

    logger.info(
        f"User {record.identity} claimed {points_to_claim} points ({amount} WLD), "
        f"available {available} → {updated.available_points}"
    )
    return updated


def reverse_claim(
    record: UserProgress,
    claim_id: str,
    now: datetime,
    reason: str = "Payment failed"
) -> UserProgress:
    """
    Compensate a claim whose payment did not go through

    Decrements claimed_points by the claimed points and appends a
    claim_reversal entry; the original claim entry stays untouched.

    Raises:
        InvalidArgumentError: If claim_id is not a claim or was already reversed
    """
    _require_aware(now)
    claim = record.find_transaction(claim_id)
    if claim is None or claim.kind != TransactionKind.CLAIM:
        raise InvalidArgumentError(message=f"No claim with id {claim_id}", field="claim_id", value=claim_id)
    if any(t.reverses == claim_id for t in record.transactions):
        raise InvalidArgumentError(message=f"Claim {claim_id} already reversed", field="claim_id", value=claim_id)

    reversal = _new_transaction(
        record,
        TransactionKind.CLAIM_REVERSAL,
        amount=claim.amount,
        points=claim.points,
        description=f"Reversed claim {claim_id}: {reason}",
        now=now,
        external_ref=claim.external_ref,
        reverses=claim_id,
    )

    updated = apply_patch(record, ProgressPatch(
        claimed_points=record.claimed_points - claim.points,
        transactions=record.transactions + (reversal,),
        last_seen_at=now,
    ))

    logger.warning(f"Reversed claim {claim_id} for user {record.identity}: {claim.points} points returned ({reason})")
    return updated


def unlock_achievement(record: UserProgress, achievement_id: str, now: datetime) -> UserProgress:
    """
    Unlock an achievement and credit its reward (no-op if already unlocked)

    Raises:
        InvalidArgumentError: If the achievement id is unknown
    """
    achievement = get_achievement(achievement_id)
    _require_aware(now)

    if achievement_id in record.achievement_ids():
        logger.debug(f"Achievement {achievement_id} already unlocked for user {record.identity}")
        return record

    transaction = _new_transaction(
        record,
        TransactionKind.ACHIEVEMENT,
        amount=Decimal(achievement.reward_points),
        points=achievement.reward_points,
        description=f"Achievement unlocked: {achievement.name}",
        now=now,
    )

    updated = apply_patch(record, ProgressPatch(
        achievements=record.achievements + (UnlockedAchievement(id=achievement_id, unlocked_at=now),),
        total_points=record.total_points + achievement.reward_points,
        transactions=record.transactions + (transaction,),
        last_seen_at=now,
    ))

    logger.info(
        f"User {record.identity} unlocked achievement: {achievement_id} "
        f"({achievement.name}) +{achievement.reward_points} points"
    )
    return updated


def apply_referral_bonus(
    record: UserProgress,
    referrer_identity: str,
    now: datetime,
    config: Optional[EconomyConfig] = None
) -> UserProgress:
    """
    Credit the one-shot bonus for having been referred (no-op once applied)

    Raises:
        InvalidArgumentError: If the referrer is empty or the user themself
    """
    config = config or _DEFAULT_CONFIG
    _require_identity(referrer_identity, "referrer_identity")
    _require_aware(now)

    if record.referral.bonus_applied:
        logger.debug(f"Referral bonus already applied for user {record.identity}")
        return record
    if referrer_identity == record.identity:
        raise InvalidArgumentError(
            message="Users cannot refer themselves",
            field="referrer_identity",
            value=referrer_identity,
        )

    bonus = config.referral_bonus_points
    transaction = _new_transaction(
        record,
        TransactionKind.REFERRAL_BONUS,
        amount=Decimal(bonus),
        points=bonus,
        description=f"Welcome bonus for joining via {referrer_identity}",
        now=now,
    )

    updated = apply_patch(record, ProgressPatch(
        referral=record.referral.model_copy(update={"referred_by": referrer_identity, "bonus_applied": True}),
        total_points=record.total_points + bonus,
        transactions=record.transactions + (transaction,),
        last_seen_at=now,
    ))

    logger.info(f"Applied referral bonus for user {record.identity} (referred by {referrer_identity}): +{bonus} points")
    return updated


def add_referral(
    record: UserProgress,
    referred_identity: str,
    now: datetime,
    config: Optional[EconomyConfig] = None
) -> UserProgress:
    """
    Record a user this user referred and credit the referral bonus

    No-op when the referred identity is already listed.
    """
    config = config or _DEFAULT_CONFIG
    _require_identity(referred_identity, "referred_identity")
    _require_aware(now)

    if referred_identity in record.referral.referrals:
        logger.debug(f"User {record.identity} already referred {referred_identity}")
        return record
    if referred_identity == record.identity:
        raise InvalidArgumentError(
            message="Users cannot refer themselves",
            field="referred_identity",
            value=referred_identity,
        )

    bonus = config.referral_bonus_points
    transaction = _new_transaction(
        record,
        TransactionKind.REFERRAL,
        amount=Decimal(bonus),
        points=bonus,
        description=f"Referral bonus for inviting {referred_identity}",
        now=now,
    )

    updated = apply_patch(record, ProgressPatch(
        referral=record.referral.model_copy(
            update={"referrals": record.referral.referrals + (referred_identity,)}
        ),
        total_points=record.total_points + bonus,
        transactions=record.transactions + (transaction,),
        last_seen_at=now,
    ))

    logger.info(
        f"User {record.identity} referred {referred_identity}: +{bonus} points "
        f"({len(updated.referral.referrals)} referrals)"
    )
    return updated


def reset_streak_if_broken(
    record: UserProgress,
    now: datetime,
    config: Optional[EconomyConfig] = None
) -> UserProgress:
    """
    Zero the streak once a full calendar day passed without actions

    Streak breakage is time-driven, so callers run this at every session
    start before computing quota or rewards.
    """
    config = config or _DEFAULT_CONFIG
    _require_aware(now)

    if not is_streak_broken(record.last_action_at, now, config.timezone):
        return record

    logger.info(f"Streak broken for user {record.identity}. Was {record.current_streak} days")
    return apply_patch(record, ProgressPatch(current_streak=0, last_action_at=None))


def start_session(
    record: UserProgress,
    now: datetime,
    config: Optional[EconomyConfig] = None
) -> UserProgress:
    """Session start: reset a broken streak and roll actions_today over to a new day"""
    config = config or _DEFAULT_CONFIG
    updated = reset_streak_if_broken(record, now, config)

    changes = {"last_seen_at": now}
    if updated.actions_today and not has_acted_today(updated.last_action_at, now, config.timezone):
        changes["actions_today"] = 0

    return apply_patch(updated, ProgressPatch(**changes))


def mark_verified(record: UserProgress, now: datetime, verified: bool = True) -> UserProgress:
    """Store the verification provider's decision (no-op when unchanged)"""
    _require_aware(now)
    if record.verified == verified:
        return record

    logger.info(f"User {record.identity} verification set to {verified}")
    return apply_patch(record, ProgressPatch(
        verified=verified,
        verified_at=now if verified else None,
        last_seen_at=now,
    ))
