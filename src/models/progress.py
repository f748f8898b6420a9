"""User progress (ledger record) Pydantic models"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PROGRESS_SCHEMA_VERSION = 1


class TransactionKind(str, Enum):
    """Kinds of ledger entries"""
    CLAIM = "claim"
    CLAIM_REVERSAL = "claim_reversal"
    REFERRAL = "referral"
    REFERRAL_BONUS = "referral_bonus"
    ACHIEVEMENT = "achievement"
    MILESTONE = "milestone"


class ActivityEntry(BaseModel):
    """Completed actions on one calendar day"""
    model_config = ConfigDict(frozen=True)

    day: date
    actions_completed: int = Field(ge=0)


class CalendarDay(BaseModel):
    """One cell of the streak calendar view"""
    day: date
    actions_completed: int = 0
    was_active: bool = False
    is_today: bool = False


class Transaction(BaseModel):
    """
    Audit-trail entry, never mutated after creation

    `amount` is in points for every kind except claims and claim reversals,
    where it is the currency amount. `points` always holds the point delta
    against total/claimed points.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    kind: TransactionKind
    amount: Decimal
    points: int = 0
    description: str
    external_ref: Optional[str] = None
    reverses: Optional[str] = None  # id of the reversed claim


class UnlockedAchievement(BaseModel):
    """Achievement unlocked by the user"""
    model_config = ConfigDict(frozen=True)

    id: str
    unlocked_at: datetime


class ReferralState(BaseModel):
    """Referral code, who referred this user, and whom this user referred"""
    model_config = ConfigDict(frozen=True)

    code: str
    referred_by: Optional[str] = None
    referrals: tuple[str, ...] = ()
    bonus_applied: bool = False

    @field_validator("referrals")
    @classmethod
    def no_duplicate_referrals(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("Referral list contains duplicates")
        return v


class UserProgress(BaseModel):
    """
    Durable per-user record, owned by the progress ledger

    Treated as immutable: every ledger operation returns a new instance.
    Available balance is derived (total_points - claimed_points), never stored.
    """
    model_config = ConfigDict(frozen=True)

    schema_version: int = PROGRESS_SCHEMA_VERSION
    version: int = Field(default=0, ge=0)

    # Identity
    identity: str = Field(min_length=1)
    verified: bool = False
    verified_at: Optional[datetime] = None

    # Streak
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    activity_history: tuple[ActivityEntry, ...] = ()
    last_action_at: Optional[datetime] = None

    # Progress
    actions_today: int = Field(default=0, ge=0)
    total_actions: int = Field(default=0, ge=0)
    total_points: int = Field(default=0, ge=0)
    claimed_points: int = Field(default=0, ge=0)

    achievements: tuple[UnlockedAchievement, ...] = ()
    referral: ReferralState
    transactions: tuple[Transaction, ...] = ()

    # Metadata
    created_at: datetime
    last_seen_at: datetime

    @field_validator("activity_history")
    @classmethod
    def sorted_unique_days(cls, v: tuple[ActivityEntry, ...]) -> tuple[ActivityEntry, ...]:
        """One entry per date, kept in ascending date order"""
        days = [entry.day for entry in v]
        if len(set(days)) != len(days):
            raise ValueError("Activity history has more than one entry for a date")
        return tuple(sorted(v, key=lambda entry: entry.day))

    @field_validator("achievements")
    @classmethod
    def unique_achievements(cls, v: tuple[UnlockedAchievement, ...]) -> tuple[UnlockedAchievement, ...]:
        ids = [a.id for a in v]
        if len(set(ids)) != len(ids):
            raise ValueError("Achievement unlocked more than once")
        return v

    @field_validator("transactions")
    @classmethod
    def unique_transaction_ids(cls, v: tuple[Transaction, ...]) -> tuple[Transaction, ...]:
        ids = [t.id for t in v]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate transaction id")
        return v

    @field_validator("last_action_at", "verified_at", "created_at", "last_seen_at")
    @classmethod
    def timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            raise ValueError("Timestamps must be timezone-aware")
        return v

    @model_validator(mode="after")
    def ledger_invariants(self) -> "UserProgress":
        """Cross-field invariants"""
        if self.claimed_points > self.total_points:
            raise ValueError(
                f"claimed_points ({self.claimed_points}) exceeds total_points ({self.total_points})"
            )
        if self.longest_streak < self.current_streak:
            raise ValueError(
                f"longest_streak ({self.longest_streak}) is below current_streak ({self.current_streak})"
            )
        return self

    @property
    def available_points(self) -> int:
        return self.total_points - self.claimed_points

    def achievement_ids(self) -> set[str]:
        return {a.id for a in self.achievements}

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None


class ProgressPatch(BaseModel):
    """
    Typed partial update of a UserProgress record

    Only fields explicitly set on the patch are applied (see apply_patch).
    """
    verified: Optional[bool] = None
    verified_at: Optional[datetime] = None
    current_streak: Optional[int] = None
    longest_streak: Optional[int] = None
    activity_history: Optional[tuple[ActivityEntry, ...]] = None
    last_action_at: Optional[datetime] = None
    actions_today: Optional[int] = None
    total_actions: Optional[int] = None
    total_points: Optional[int] = None
    claimed_points: Optional[int] = None
    achievements: Optional[tuple[UnlockedAchievement, ...]] = None
    referral: Optional[ReferralState] = None
    transactions: Optional[tuple[Transaction, ...]] = None
    last_seen_at: Optional[datetime] = None


def apply_patch(record: UserProgress, patch: ProgressPatch) -> UserProgress:
    """
    Merge a patch into a record and re-validate the result

    Fields not set on the patch keep their current value; fields set
    explicitly to None (e.g. last_action_at) are cleared. The input record
    is left untouched.

    Raises:
        pydantic.ValidationError: If the merged record breaks an invariant
    """
    updates = {name: getattr(patch, name) for name in patch.model_fields_set}
    merged = {name: getattr(record, name) for name in UserProgress.model_fields}
    merged.update(updates)
    return UserProgress.model_validate(merged)
