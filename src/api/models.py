"""Pydantic models for API request/response validation"""
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field

from src.models.progress import CalendarDay, Transaction


class ActionRequest(BaseModel):
    """Report one completed ad view"""
    completed_fully: bool = Field(
        default=True,
        description="False when the user skipped after the minimum watch time"
    )


class ActionResponse(BaseModel):
    """Result of a recorded action"""
    identity: str
    points_earned: int
    milestone_bonus: int
    achievements_unlocked: List[str]
    current_streak: int
    actions_today: int
    actions_remaining_today: int
    available_balance: int


class ClaimRequest(BaseModel):
    """Claim points (whole available balance when points is omitted)"""
    points: Optional[int] = Field(default=None, ge=1, description="Points to claim")


class ClaimResponse(BaseModel):
    """Settled claim"""
    identity: str
    transaction_id: str
    points_claimed: int
    currency_amount: Decimal
    developer_fee: Decimal
    payout_amount: Decimal
    external_ref: str
    available_balance: int


class AchievementRequest(BaseModel):
    """Unlock an achievement"""
    achievement_id: str = Field(..., min_length=1)


class ReferralBonusRequest(BaseModel):
    """User joined through a referral"""
    referrer_identity: str = Field(..., min_length=1)


class ReferralRequest(BaseModel):
    """User referred someone"""
    referred_identity: str = Field(..., min_length=1)


class ProgressResponse(BaseModel):
    """Stored progress fields"""
    identity: str
    verified: bool
    current_streak: int
    longest_streak: int
    actions_today: int
    total_actions: int
    total_points: int
    claimed_points: int
    available_balance: int
    last_action_at: Optional[datetime] = None
    achievements: List[str]
    referral_code: str
    referred_by: Optional[str] = None
    referrals: List[str]
    version: int


class CalendarResponse(BaseModel):
    """Streak calendar for the trailing window"""
    identity: str
    days: List[CalendarDay]


class TransactionListResponse(BaseModel):
    """Ledger entries, oldest first"""
    identity: str
    transactions: List[Transaction]


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str
    storage: str
    timestamp: datetime
    version: str = "1.0.0"


class ErrorResponse(BaseModel):
    """Error response"""
    error: str
    message: str
    user_message: str
    request_id: str
    timestamp: datetime
