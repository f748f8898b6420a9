"""
ProgressService - Reward Engine Orchestration

Runs every read-modify-write cycle against the persistence gateway:
load (or create) the record, apply a pure ledger operation, save, return.
Also owns the claim flow with the external payment provider and the
compensating reversal when a payment fails.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import uuid4

from src.config import EconomyConfig, SAVE_RETRY_ATTEMPTS
from src.db.gateway import ProgressGateway
from src.exceptions import (
    AdStreakError,
    InsufficientBalanceError,
    InvalidArgumentError,
    ProviderError,
    QuotaExceededError,
    RecordNotFoundError,
    StaleRecordError,
)
from src.gamification import economy, ledger, read_api
from src.gamification.achievement_system import check_achievements
from src.models.progress import Transaction, TransactionKind, UserProgress
from src.observability.metrics import (
    achievements_unlocked_total,
    actions_recorded_total,
    claims_total,
    points_awarded_total,
    points_claimed_total,
    quota_rejections_total,
    streak_resets_total,
)
from src.services.provider import RewardProvider
from src.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)

Mutation = Callable[[UserProgress, datetime], UserProgress]


@dataclass
class ActionResult:
    """Outcome of one completed action"""
    record: UserProgress
    points_earned: int
    milestone_bonus: int = 0
    achievements_unlocked: List[str] = field(default_factory=list)


@dataclass
class ClaimResult:
    """Outcome of a settled claim"""
    record: UserProgress
    points_claimed: int
    currency_amount: Decimal
    developer_fee: Decimal
    payout_amount: Decimal
    external_ref: str
    transaction_id: str


def _new_entries(before: UserProgress, after: UserProgress) -> tuple[Transaction, ...]:
    return after.transactions[len(before.transactions):]


def _award_earned_achievements(record: UserProgress, now: datetime) -> UserProgress:
    for achievement in check_achievements(record):
        record = ledger.unlock_achievement(record, achievement.id, now)
    return record


class ProgressService:
    """
    Service for the watch-to-earn loop.

    Responsibilities:
    - Session start (streak reset, day rollover)
    - Quota enforcement and reward computation per action
    - Automatic achievement unlocks
    - Claims with optimistic ledger update and compensating reversal
    - Referrals and verification refresh
    """

    def __init__(
        self,
        gateway: ProgressGateway,
        provider: RewardProvider,
        config: Optional[EconomyConfig] = None,
        clock: Callable[[], datetime] = now_utc,
        save_attempts: int = SAVE_RETRY_ATTEMPTS
    ):
        """
        Initialize ProgressService.

        Args:
            gateway: Persistence gateway for progress records
            provider: Verification & payment provider
            config: Economy tunables
            clock: Returns the current timezone-aware time
            save_attempts: Read-modify-write attempts on version conflicts
        """
        self.gateway = gateway
        self.provider = provider
        self.config = config or EconomyConfig()
        self.clock = clock
        self.save_attempts = max(1, save_attempts)
        logger.debug("ProgressService initialized")

    # ==========================================
    # Read-modify-write plumbing
    # ==========================================

    async def get_or_create(self, identity: str) -> UserProgress:
        """Load a record, creating and saving a fresh one on first contact"""
        record = await self.gateway.load(identity)
        if record is not None:
            return record

        record = await self.gateway.save(ledger.new_progress(identity, self.clock()))
        logger.info(f"Created progress record for user {identity}")
        return record

    async def get_existing(self, identity: str) -> UserProgress:
        record = await self.gateway.load(identity)
        if record is None:
            raise RecordNotFoundError(
                message=f"No progress for {identity}",
                record_type="Progress",
                record_id=identity,
                user_id=identity,
            )
        return record

    async def _mutate(self, identity: str, operation: str, mutation: Mutation) -> tuple[UserProgress, UserProgress]:
        """
        Apply a pure mutation and save, retrying on version conflicts

        Returns:
            (record before, saved record after). Unchanged records are not saved.
        """
        attempt = 1
        while True:
            try:
                before = await self.get_or_create(identity)
                after = mutation(before, self.clock())
                if after is before:
                    return before, before
                return before, await self.gateway.save(after)
            except StaleRecordError:
                if attempt >= self.save_attempts:
                    raise
                logger.warning(
                    f"Version conflict on {operation} for user {identity} "
                    f"(attempt {attempt}/{self.save_attempts}), reloading"
                )
                attempt += 1

    # ==========================================
    # Operations
    # ==========================================

    async def start_session(self, identity: str) -> UserProgress:
        """Reset a broken streak and roll the day over; call on every session start"""
        before, after = await self._mutate(
            identity,
            "start_session",
            lambda record, now: ledger.start_session(record, now, self.config),
        )
        if before.current_streak > 0 and after.current_streak == 0:
            streak_resets_total.inc()
        return after

    async def complete_action(self, identity: str, completed_fully: bool = True) -> ActionResult:
        """
        Record one completed ad view

        Reward uses the streak as of session start, so the first action of
        a new day is paid at the previous day's streak.

        Raises:
            QuotaExceededError: If today's quota is already used up
        """
        earned = {}

        def mutation(record: UserProgress, now: datetime) -> UserProgress:
            record = ledger.start_session(record, now, self.config)

            quota = read_api.daily_quota_for(record, self.config)
            used = read_api.actions_today(record, now, self.config)
            if used >= quota:
                quota_rejections_total.inc()
                raise QuotaExceededError(
                    message=f"Daily quota of {quota} actions reached",
                    quota=quota,
                    used=used,
                    user_id=record.identity,
                    operation="complete_action",
                )

            points = economy.action_reward(record.current_streak, record.verified, completed_fully, self.config)
            earned["points"] = points
            record = ledger.record_action(record, points, now, self.config)
            return _award_earned_achievements(record, now)

        before, after = await self._mutate(identity, "complete_action", mutation)

        previously_unlocked = before.achievement_ids()
        result = ActionResult(
            record=after,
            points_earned=earned["points"],
            achievements_unlocked=[a.id for a in after.achievements if a.id not in previously_unlocked],
        )
        for entry in _new_entries(before, after):
            if entry.kind == TransactionKind.MILESTONE:
                result.milestone_bonus += entry.points
                points_awarded_total.labels(source="milestone").inc(entry.points)
            elif entry.kind == TransactionKind.ACHIEVEMENT:
                points_awarded_total.labels(source="achievement").inc(entry.points)
        for achievement_id in result.achievements_unlocked:
            achievements_unlocked_total.labels(achievement_id=achievement_id).inc()

        actions_recorded_total.labels(
            verified=str(after.verified).lower(),
            completed=str(completed_fully).lower(),
        ).inc()
        points_awarded_total.labels(source="action").inc(result.points_earned)
        return result

    async def claim(self, identity: str, points: Optional[int] = None) -> ClaimResult:
        """
        Convert points to currency through the payment provider

        Flow:
        1. Apply record_claim under a fresh payment reference and persist it
        2. Ask the provider to transfer under that reference
        3. On failure, cancel the transfer, persist a compensating
           reverse_claim and re-raise

        The provider is never contacted before the claim entry is saved. If
        a failed transfer cannot be cancelled the claim stays recorded, so
        the points can not be paid out a second time.

        Args:
            identity: User identity
            points: Points to claim (whole available balance when omitted)

        Raises:
            InvalidArgumentError: Below the minimum claim amount
            InsufficientBalanceError: More than the available balance
            ProviderError: Payment failed (the claim has been reversed
                unless the transfer could not be cancelled)
        """
        record = await self.get_or_create(identity)
        available = read_api.available_balance(record)
        points = available if points is None else points
        economy.require_non_negative_int(points, "points")

        if points > available:
            claims_total.labels(status="rejected").inc()
            raise InsufficientBalanceError(
                message=f"Claim of {points} points exceeds available balance of {available}",
                requested=points,
                available=available,
                user_id=identity,
                operation="claim",
            )
        if points == 0 or not economy.meets_minimum_claim(points, self.config):
            claims_total.labels(status="rejected").inc()
            raise InvalidArgumentError(
                message=f"Claim must be at least {self.config.min_claim_currency} WLD",
                field="points",
                value=points,
                user_id=identity,
            )

        amount = economy.points_to_currency(points, self.config)
        fee = economy.developer_fee(amount, self.config)
        payout = amount - fee
        reference = uuid4().hex

        try:
            before, after = await self._mutate(
                identity,
                "claim",
                lambda record, now: ledger.record_claim(record, points, amount, reference, now),
            )
        except InsufficientBalanceError:
            # balance spent by a concurrent claim since the check above
            claims_total.labels(status="rejected").inc()
            raise
        claim_entry = _new_entries(before, after)[-1]

        try:
            await self.provider.transfer(identity, payout, reference)
        except Exception as e:
            await self._cancel_and_reverse(identity, claim_entry, reference, e)
            if isinstance(e, AdStreakError):
                raise
            raise ProviderError(
                message=f"Transfer {reference} failed: {e}",
                user_id=identity,
                operation="transfer",
                cause=e,
            )

        claims_total.labels(status="succeeded").inc()
        points_claimed_total.inc(points)
        logger.info(f"User {identity} claim {claim_entry.id} settled: {payout} WLD (fee {fee})")

        return ClaimResult(
            record=after,
            points_claimed=points,
            currency_amount=amount,
            developer_fee=fee,
            payout_amount=payout,
            external_ref=reference,
            transaction_id=claim_entry.id,
        )

    async def _cancel_and_reverse(
        self,
        identity: str,
        claim_entry: Transaction,
        reference: str,
        failure: Exception
    ) -> None:
        logger.error(f"Transfer {reference} failed for user {identity}: {failure}")
        try:
            await self.provider.cancel_transfer(reference)
        except Exception as e:
            claims_total.labels(status="unresolved").inc()
            logger.error(
                f"Could not cancel transfer {reference} for user {identity}, "
                f"claim {claim_entry.id} left in place: {e}"
            )
            raise ProviderError(
                message=f"Transfer {reference} failed and could not be cancelled: {e}",
                user_id=identity,
                operation="cancel_transfer",
                cause=e,
            )

        await self._mutate(
            identity,
            "reverse_claim",
            lambda record, now: ledger.reverse_claim(
                record, claim_entry.id, now, reason=str(failure) or "Payment failed"
            ),
        )
        claims_total.labels(status="reversed").inc()
        logger.info(f"Reversed claim {claim_entry.id} for user {identity}")

    async def unlock_achievement(self, identity: str, achievement_id: str) -> UserProgress:
        before, after = await self._mutate(
            identity,
            "unlock_achievement",
            lambda record, now: ledger.unlock_achievement(record, achievement_id, now),
        )
        if after is not before:
            achievements_unlocked_total.labels(achievement_id=achievement_id).inc()
        return after

    async def apply_referral_bonus(self, identity: str, referrer_identity: str) -> UserProgress:
        before, after = await self._mutate(
            identity,
            "apply_referral_bonus",
            lambda record, now: ledger.apply_referral_bonus(record, referrer_identity, now, self.config),
        )
        if after is not before:
            points_awarded_total.labels(source="referral_bonus").inc(self.config.referral_bonus_points)
        return after

    async def add_referral(self, identity: str, referred_identity: str) -> UserProgress:
        def mutation(record: UserProgress, now: datetime) -> UserProgress:
            updated = ledger.add_referral(record, referred_identity, now, self.config)
            if updated is record:
                return record
            return _award_earned_achievements(updated, now)

        before, after = await self._mutate(identity, "add_referral", mutation)
        if after is not before:
            points_awarded_total.labels(source="referral").inc(self.config.referral_bonus_points)
        return after

    async def register_referral(self, new_identity: str, referrer_identity: str) -> tuple[UserProgress, UserProgress]:
        """
        Link a newly joined user to their referrer

        Two independent saves: the welcome bonus on the new user, then the
        referral entry on the referrer.

        Returns:
            (new user's record, referrer's record)
        """
        referred = await self.apply_referral_bonus(new_identity, referrer_identity)
        referrer = await self.add_referral(referrer_identity, new_identity)
        return referred, referrer

    async def refresh_verification(self, identity: str) -> UserProgress:
        """Pull the verification flag from the provider and store it"""
        try:
            verified = await self.provider.is_verified(identity)
        except AdStreakError:
            raise
        except Exception as e:
            raise ProviderError(
                message=f"Verification lookup failed: {e}",
                user_id=identity,
                operation="is_verified",
                cause=e,
            )

        def mutation(record: UserProgress, now: datetime) -> UserProgress:
            updated = ledger.mark_verified(record, now, verified)
            return _award_earned_achievements(updated, now)

        _, after = await self._mutate(identity, "refresh_verification", mutation)
        return after

    async def summary(self, identity: str) -> read_api.ProgressSummary:
        """Dashboard projection (read-only; session start is applied in memory)"""
        record = await self.get_existing(identity)
        now = self.clock()
        return read_api.progress_summary(ledger.start_session(record, now, self.config), now, self.config)

    async def reset(self, identity: str) -> bool:
        """Explicit reset: delete the user's record"""
        deleted = await self.gateway.delete(identity)
        if deleted:
            logger.info(f"Reset progress for user {identity}")
        return deleted
