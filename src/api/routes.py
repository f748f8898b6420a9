"""API routes for the reward engine"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request, Response, status

from src.api.models import (
    ActionRequest, ActionResponse,
    ClaimRequest, ClaimResponse,
    AchievementRequest, ReferralBonusRequest, ReferralRequest,
    ProgressResponse, CalendarResponse, TransactionListResponse,
    HealthCheckResponse,
)
from src.api.auth import verify_api_key
from src.api.middleware import limiter
from src.exceptions import RecordNotFoundError
from src.gamification import read_api
from src.models.progress import UserProgress
from src.services.progress_service import ProgressService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_progress_service(request: Request) -> ProgressService:
    """Service instance created at application startup"""
    return request.app.state.progress_service


def _progress_response(record: UserProgress) -> ProgressResponse:
    return ProgressResponse(
        identity=record.identity,
        verified=record.verified,
        current_streak=record.current_streak,
        longest_streak=record.longest_streak,
        actions_today=record.actions_today,
        total_actions=record.total_actions,
        total_points=record.total_points,
        claimed_points=record.claimed_points,
        available_balance=read_api.available_balance(record),
        last_action_at=record.last_action_at,
        achievements=[a.id for a in record.achievements],
        referral_code=record.referral.code,
        referred_by=record.referral.referred_by,
        referrals=list(record.referral.referrals),
        version=record.version,
    )


@router.get("/api/v1/progress/{identity}", response_model=read_api.ProgressSummary)
@limiter.limit("60/minute")
async def get_progress(
    request: Request,
    identity: str,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Dashboard summary: streak, quota, next reward, balance, calendar"""
    return await service.summary(identity)


@router.post("/api/v1/progress/{identity}/session", response_model=ProgressResponse)
@limiter.limit("30/minute")
async def start_session(
    request: Request,
    identity: str,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """
    Start a session

    Creates the record on first contact, resets a broken streak and rolls
    the daily counter over.
    """
    record = await service.start_session(identity)
    return _progress_response(record)


@router.post("/api/v1/progress/{identity}/actions", response_model=ActionResponse)
@limiter.limit("60/minute")
async def complete_action(
    request: Request,
    identity: str,
    payload: ActionRequest,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Record one completed ad view; 409 once today's quota is used up"""
    result = await service.complete_action(identity, completed_fully=payload.completed_fully)
    record = result.record

    return ActionResponse(
        identity=identity,
        points_earned=result.points_earned,
        milestone_bonus=result.milestone_bonus,
        achievements_unlocked=result.achievements_unlocked,
        current_streak=record.current_streak,
        actions_today=record.actions_today,
        actions_remaining_today=read_api.actions_remaining_today(record, service.clock(), service.config),
        available_balance=read_api.available_balance(record),
    )


@router.post("/api/v1/progress/{identity}/claims", response_model=ClaimResponse)
@limiter.limit("10/minute")
async def claim(
    request: Request,
    identity: str,
    payload: ClaimRequest,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """
    Claim points for currency

    Rate limit: 10 requests per minute (each claim moves money)
    """
    logger.info(f"Claim requested for user {identity} by key {caller}")
    result = await service.claim(identity, points=payload.points)

    return ClaimResponse(
        identity=identity,
        transaction_id=result.transaction_id,
        points_claimed=result.points_claimed,
        currency_amount=result.currency_amount,
        developer_fee=result.developer_fee,
        payout_amount=result.payout_amount,
        external_ref=result.external_ref,
        available_balance=read_api.available_balance(result.record),
    )


@router.post("/api/v1/progress/{identity}/achievements", response_model=ProgressResponse)
@limiter.limit("30/minute")
async def unlock_achievement(
    request: Request,
    identity: str,
    payload: AchievementRequest,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Unlock an achievement (no-op if already unlocked)"""
    record = await service.unlock_achievement(identity, payload.achievement_id)
    return _progress_response(record)


@router.post("/api/v1/progress/{identity}/referral-bonus", response_model=ProgressResponse)
@limiter.limit("10/minute")
async def apply_referral_bonus(
    request: Request,
    identity: str,
    payload: ReferralBonusRequest,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Link a new user to their referrer; both sides are credited once"""
    referred, _ = await service.register_referral(identity, payload.referrer_identity)
    return _progress_response(referred)


@router.post("/api/v1/progress/{identity}/referrals", response_model=ProgressResponse)
@limiter.limit("10/minute")
async def add_referral(
    request: Request,
    identity: str,
    payload: ReferralRequest,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Record that this user referred someone"""
    record = await service.add_referral(identity, payload.referred_identity)
    return _progress_response(record)


@router.post("/api/v1/progress/{identity}/verify", response_model=ProgressResponse)
@limiter.limit("10/minute")
async def refresh_verification(
    request: Request,
    identity: str,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Refresh the verification flag from the provider"""
    record = await service.refresh_verification(identity)
    return _progress_response(record)


@router.get("/api/v1/progress/{identity}/calendar", response_model=CalendarResponse)
@limiter.limit("60/minute")
async def get_calendar(
    request: Request,
    identity: str,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Trailing activity calendar, oldest day first"""
    record = await service.get_existing(identity)
    days = read_api.calendar(record, service.clock(), service.config)
    return CalendarResponse(identity=identity, days=days)


@router.get("/api/v1/progress/{identity}/transactions", response_model=TransactionListResponse)
@limiter.limit("60/minute")
async def get_transactions(
    request: Request,
    identity: str,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Ledger entries, oldest first"""
    record = await service.get_existing(identity)
    return TransactionListResponse(identity=identity, transactions=list(record.transactions))


@router.delete("/api/v1/progress/{identity}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
async def reset_progress(
    request: Request,
    identity: str,
    caller: str = Depends(verify_api_key),
    service: ProgressService = Depends(get_progress_service)
):
    """Explicit reset: delete all progress for the user"""
    logger.warning(f"Progress reset requested for user {identity} by key {caller}")
    if not await service.reset(identity):
        raise RecordNotFoundError(
            message=f"No progress for {identity}",
            record_type="Progress",
            record_id=identity,
            user_id=identity,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint"""
    storage = getattr(request.app.state, "storage_backend", "unknown")
    return HealthCheckResponse(
        status="healthy",
        storage=storage,
        timestamp=datetime.now(timezone.utc),
    )
