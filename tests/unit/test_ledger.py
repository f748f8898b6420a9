"""Unit tests for the progress ledger (src/gamification/ledger.py)"""
import random
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from pydantic import ValidationError

from src.config import EconomyConfig
from src.exceptions import InsufficientBalanceError, InvalidArgumentError
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
    prune_history,
    referral_code_for,
)
from src.models.progress import ActivityEntry, ProgressPatch, TransactionKind, apply_patch


# ============================================================================
# New Record Tests
# ============================================================================

def test_new_progress_defaults(now):
    """Test a fresh record starts empty"""
    record = new_progress("0xabcdef0123456789", now)

    assert record.identity == "0xabcdef0123456789"
    assert record.current_streak == 0
    assert record.total_points == 0
    assert record.claimed_points == 0
    assert record.version == 0
    assert record.referral.code == "23456789"
    assert record.created_at == now


def test_referral_code_is_uppercased_suffix():
    assert referral_code_for("0x12ab34cd56ef") == "34CD56EF"
    assert referral_code_for("abc") == "ABC"


def test_new_progress_rejects_naive_time():
    """Test naive timestamps are rejected"""
    with pytest.raises(InvalidArgumentError):
        new_progress("0xabc", datetime(2024, 3, 15, 12, 0))


def test_new_progress_rejects_empty_identity(now):
    with pytest.raises(InvalidArgumentError):
        new_progress("  ", now)


# ============================================================================
# Record Action Tests
# ============================================================================

def test_first_action_starts_streak(fresh_progress, now, today):
    """Test the first action creates a 1-day streak"""
    record = record_action(fresh_progress, 100, now)

    assert record.current_streak == 1
    assert record.longest_streak == 1
    assert record.actions_today == 1
    assert record.total_actions == 1
    assert record.total_points == 100
    assert record.last_action_at == now
    assert record.activity_history == (ActivityEntry(day=today, actions_completed=1),)


def test_same_day_actions_accumulate(fresh_progress, now, today):
    """Test repeated actions on one day share one history entry"""
    record = record_action(fresh_progress, 100, now)
    record = record_action(record, 100, now + timedelta(hours=1))
    record = record_action(record, 50, now + timedelta(hours=2))

    assert record.current_streak == 1
    assert record.actions_today == 3
    assert record.total_points == 250
    assert record.activity_history == (ActivityEntry(day=today, actions_completed=3),)


def test_next_day_action_extends_streak(fresh_progress, now):
    """Test an action on the following day extends the streak and resets the daily count"""
    record = record_action(fresh_progress, 100, now)
    record = record_action(record, 100, now + timedelta(hours=1))
    record = record_action(record, 100, now + timedelta(days=1))

    assert record.current_streak == 2
    assert record.actions_today == 1
    assert record.total_actions == 3


def test_action_after_gap_restarts_streak(make_progress, now, today, history_for):
    """Test a gap in the history restarts the streak at 1"""
    record = make_progress(
        activity_history=history_for(today - timedelta(days=3), 4),
        current_streak=4,
        longest_streak=4,
        last_action_at=now - timedelta(days=3),
    )

    record = record_action(record, 100, now)

    assert record.current_streak == 1
    assert record.longest_streak == 4


def test_record_action_does_not_mutate_input(fresh_progress, now):
    """Test ledger operations return a new record"""
    updated = record_action(fresh_progress, 100, now)

    assert updated is not fresh_progress
    assert fresh_progress.total_points == 0
    assert fresh_progress.activity_history == ()


def test_record_action_rejects_negative_points(fresh_progress, now):
    with pytest.raises(InvalidArgumentError):
        record_action(fresh_progress, -1, now)


def test_record_action_is_deterministic(fresh_progress, now):
    """Test the same input produces an identical record"""
    assert record_action(fresh_progress, 100, now) == record_action(fresh_progress, 100, now)


# ============================================================================
# Milestone Tests
# ============================================================================

def test_milestone_granted_once(make_progress, now, today, history_for):
    """Test landing on day 7 grants 5000 points exactly once"""
    record = make_progress(
        activity_history=history_for(today - timedelta(days=1), 6),
        current_streak=6,
        longest_streak=6,
        last_action_at=now - timedelta(days=1),
        total_actions=6,
    )

    record = record_action(record, 100, now)

    assert record.current_streak == 7
    milestones = [t for t in record.transactions if t.kind == TransactionKind.MILESTONE]
    assert len(milestones) == 1
    assert milestones[0].points == 5_000
    assert record.total_points == 5_100

    record = record_action(record, 100, now + timedelta(hours=1))

    milestones = [t for t in record.transactions if t.kind == TransactionKind.MILESTONE]
    assert len(milestones) == 1
    assert record.total_points == 5_200


def test_streak_continues_past_retention_window(make_progress, now, today, history_for):
    """Test streaks longer than the retained history keep counting"""
    record = make_progress(
        activity_history=history_for(today - timedelta(days=1), 90),
        current_streak=179,
        longest_streak=179,
        last_action_at=now - timedelta(days=1),
    )

    record = record_action(record, 100, now)

    assert record.current_streak == 180
    assert record.longest_streak == 180
    assert len(record.activity_history) == 90
    milestones = [t for t in record.transactions if t.kind == TransactionKind.MILESTONE]
    assert [t.points for t in milestones] == [250_000]


# ============================================================================
# History Pruning Tests
# ============================================================================

def test_prune_history_keeps_retention_window(today, history_for):
    """Test only the trailing window ending today is kept"""
    history = history_for(today, 120)

    pruned = prune_history(history, today, 90)

    assert len(pruned) == 90
    assert min(entry.day for entry in pruned) == today - timedelta(days=89)


def test_record_action_prunes_old_history(make_progress, now, today):
    record = make_progress(
        activity_history=(ActivityEntry(day=today - timedelta(days=100), actions_completed=3),),
        current_streak=0,
        longest_streak=1,
    )

    record = record_action(record, 100, now)

    assert record.activity_history == (ActivityEntry(day=today, actions_completed=1),)


# ============================================================================
# Claim Tests
# ============================================================================

def test_claim_more_than_available_fails(make_progress, now):
    """Test claiming 6000 of 5000 points is rejected"""
    record = make_progress(total_points=5_000)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        record_claim(record, 6_000, Decimal("0.6"), None, now)

    assert exc_info.value.requested == 6_000
    assert exc_info.value.available == 5_000


def test_claim_within_balance_succeeds(make_progress, now):
    """Test claiming 4000 of 5000 leaves 1000 available"""
    record = make_progress(total_points=5_000)

    record = record_claim(record, 4_000, Decimal("0.4"), "ref-1", now)

    assert record.claimed_points == 4_000
    assert record.available_points == 1_000
    claim = record.transactions[-1]
    assert claim.id == "claim_000001"
    assert claim.kind == TransactionKind.CLAIM
    assert claim.amount == Decimal("0.4")
    assert claim.points == 4_000
    assert claim.external_ref == "ref-1"


def test_claim_zero_points_rejected(make_progress, now):
    record = make_progress(total_points=5_000)
    with pytest.raises(InvalidArgumentError):
        record_claim(record, 0, Decimal("0"), None, now)


def test_claim_negative_amount_rejected(make_progress, now):
    record = make_progress(total_points=5_000)
    with pytest.raises(InvalidArgumentError):
        record_claim(record, 100, Decimal("-0.01"), None, now)


@pytest.mark.parametrize("amount", [Decimal("NaN"), Decimal("sNaN"), Decimal("Infinity")])
def test_claim_non_finite_amount_rejected(make_progress, now, amount):
    """Test NaN and infinite amounts are invalid arguments, not decimal errors"""
    record = make_progress(total_points=5_000)
    with pytest.raises(InvalidArgumentError):
        record_claim(record, 100, amount, None, now)


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_claimed_never_exceeds_total(fresh_progress, now, seed):
    """Test random action/claim sequences never overdraw the balance"""
    rng = random.Random(seed)
    record = fresh_progress
    moment = now

    for _ in range(200):
        moment += timedelta(minutes=rng.randint(1, 600))
        if rng.random() < 0.6:
            record = record_action(record, rng.randint(0, 5_000), moment)
        else:
            points = rng.randint(1, 10_000)
            try:
                record = record_claim(record, points, Decimal(points) / 10_000, None, moment)
            except InsufficientBalanceError:
                pass
        assert record.claimed_points <= record.total_points


# ============================================================================
# Claim Reversal Tests
# ============================================================================

def test_reverse_claim_restores_balance(make_progress, now):
    """Test a failed payment returns the points"""
    record = make_progress(total_points=5_000)
    record = record_claim(record, 4_000, Decimal("0.4"), "ref-1", now)

    record = reverse_claim(record, "claim_000001", now, reason="Transfer rejected")

    assert record.claimed_points == 0
    assert record.available_points == 5_000
    reversal = record.transactions[-1]
    assert reversal.kind == TransactionKind.CLAIM_REVERSAL
    assert reversal.reverses == "claim_000001"
    assert reversal.external_ref == "ref-1"
    # Original claim entry is untouched
    assert record.transactions[0].kind == TransactionKind.CLAIM


def test_reverse_claim_twice_rejected(make_progress, now):
    record = make_progress(total_points=5_000)
    record = record_claim(record, 4_000, Decimal("0.4"), None, now)
    record = reverse_claim(record, "claim_000001", now)

    with pytest.raises(InvalidArgumentError):
        reverse_claim(record, "claim_000001", now)


def test_reverse_non_claim_rejected(fresh_progress, now):
    record = unlock_achievement(fresh_progress, "first_ad", now)

    with pytest.raises(InvalidArgumentError):
        reverse_claim(record, record.transactions[0].id, now)

    with pytest.raises(InvalidArgumentError):
        reverse_claim(record, "claim_999999", now)


# ============================================================================
# Achievement Tests
# ============================================================================

def test_unlock_achievement_credits_reward(fresh_progress, now):
    """Test unlocking credits the reward and logs a transaction"""
    record = unlock_achievement(fresh_progress, "verified", now)

    assert record.achievement_ids() == {"verified"}
    assert record.total_points == 3_000
    assert record.transactions[-1].kind == TransactionKind.ACHIEVEMENT


def test_unlock_achievement_idempotent(fresh_progress, now):
    """Test a second unlock is a no-op"""
    once = unlock_achievement(fresh_progress, "first_ad", now)
    twice = unlock_achievement(once, "first_ad", now + timedelta(hours=1))

    assert twice is once
    assert twice.total_points == 500
    assert len(twice.transactions) == 1


def test_unlock_unknown_achievement(fresh_progress, now):
    with pytest.raises(InvalidArgumentError):
        unlock_achievement(fresh_progress, "moon_landing", now)


# ============================================================================
# Referral Tests
# ============================================================================

def test_apply_referral_bonus(fresh_progress, now):
    """Test the referred user receives the bonus once"""
    record = apply_referral_bonus(fresh_progress, "0xreferrer", now)

    assert record.referral.referred_by == "0xreferrer"
    assert record.referral.bonus_applied is True
    assert record.total_points == 5_000
    assert record.transactions[-1].kind == TransactionKind.REFERRAL_BONUS


def test_apply_referral_bonus_idempotent(fresh_progress, now):
    once = apply_referral_bonus(fresh_progress, "0xreferrer", now)
    twice = apply_referral_bonus(once, "0xsomeone_else", now)

    assert twice is once
    assert twice.total_points == 5_000
    assert twice.referral.referred_by == "0xreferrer"


def test_self_referral_rejected(fresh_progress, test_identity, now):
    with pytest.raises(InvalidArgumentError):
        apply_referral_bonus(fresh_progress, test_identity, now)
    with pytest.raises(InvalidArgumentError):
        add_referral(fresh_progress, test_identity, now)


def test_add_referral_credits_points(fresh_progress, now):
    """Test referring a user credits total_points"""
    record = add_referral(fresh_progress, "0xfriend1", now)
    record = add_referral(record, "0xfriend2", now)

    assert record.referral.referrals == ("0xfriend1", "0xfriend2")
    assert record.total_points == 10_000
    assert [t.id for t in record.transactions] == ["referral_000001", "referral_000002"]


def test_add_referral_duplicate_is_noop(fresh_progress, now):
    once = add_referral(fresh_progress, "0xfriend1", now)
    assert add_referral(once, "0xfriend1", now) is once


def test_referral_bonus_from_config(fresh_progress, now):
    config = EconomyConfig(referral_bonus_points=123)
    record = add_referral(fresh_progress, "0xfriend1", now, config)
    assert record.total_points == 123


# ============================================================================
# Streak Reset / Session Tests
# ============================================================================

def test_reset_broken_streak(make_progress, now, today, history_for):
    """Test last action 2 days ago zeroes the streak"""
    record = make_progress(
        activity_history=history_for(today - timedelta(days=2), 5),
        current_streak=5,
        longest_streak=8,
        last_action_at=now - timedelta(days=2),
    )

    reset = reset_streak_if_broken(record, now)

    assert reset.current_streak == 0
    assert reset.longest_streak == 8
    assert reset.last_action_at is None


def test_reset_keeps_streak_from_yesterday(make_progress, now, today, history_for):
    record = make_progress(
        activity_history=history_for(today - timedelta(days=1), 5),
        current_streak=5,
        longest_streak=5,
        last_action_at=now - timedelta(days=1),
    )

    assert reset_streak_if_broken(record, now) is record


def test_start_session_rolls_daily_count_over(make_progress, now, today, history_for):
    """Test a new day clears actions_today without touching the streak"""
    record = make_progress(
        activity_history=history_for(today - timedelta(days=1), 3),
        current_streak=3,
        longest_streak=3,
        actions_today=5,
        last_action_at=now - timedelta(days=1),
    )

    session = start_session(record, now)

    assert session.actions_today == 0
    assert session.current_streak == 3
    assert session.last_seen_at == now


def test_mark_verified(fresh_progress, now):
    record = mark_verified(fresh_progress, now)

    assert record.verified is True
    assert record.verified_at == now
    assert mark_verified(record, now) is record

    unverified = mark_verified(record, now, verified=False)
    assert unverified.verified is False
    assert unverified.verified_at is None


# ============================================================================
# Patch Tests
# ============================================================================

def test_apply_patch_only_changes_set_fields(make_progress, now):
    """Test unset fields keep their value and None clears a field"""
    record = make_progress(total_points=700, last_action_at=now)

    patched = apply_patch(record, ProgressPatch(actions_today=2, last_action_at=None))

    assert patched.actions_today == 2
    assert patched.total_points == 700
    assert patched.last_action_at is None
    assert record.last_action_at == now


def test_apply_patch_revalidates(make_progress):
    """Test a patch that breaks an invariant is rejected"""
    record = make_progress(total_points=100)

    with pytest.raises(ValidationError):
        apply_patch(record, ProgressPatch(claimed_points=200))
