"""
Standardized exception hierarchy for the AdStreak reward engine
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class AdStreakError(Exception):
    """
    Base exception for all reward engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise AdStreakError(
            message="Failed to save progress",
            user_id="0xabc123",
            operation="record_action",
            context={"points": 4000}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (Caller Input)
# ==========================================

class InvalidArgumentError(AdStreakError):
    """
    Raised when a numeric input is negative or out of range

    A programming error on the caller's side: fatal to the call, never
    retried, never silently clamped.

    Example:
        raise InvalidArgumentError(
            message="Streak length cannot be negative",
            field="streak_length",
            value=-1
        )
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Ledger Errors
# ==========================================

class LedgerError(AdStreakError):
    """Base class for rejected ledger operations"""

    log_level = logging.WARNING


class InsufficientBalanceError(LedgerError):
    """Claim exceeds the available (earned minus claimed) balance"""

    def __init__(
        self,
        message: str = "Insufficient balance",
        requested: Optional[int] = None,
        available: Optional[int] = None,
        **kwargs
    ):
        self.requested = requested
        self.available = available
        super().__init__(
            message=message,
            user_message=f"You can claim at most {available} points right now." if available is not None
            else "You don't have enough points for this claim.",
            context={"requested": requested, "available": available},
            **kwargs
        )


class QuotaExceededError(LedgerError):
    """Daily rewarded-action quota already used up"""

    def __init__(
        self,
        message: str = "Daily quota reached",
        quota: Optional[int] = None,
        used: Optional[int] = None,
        **kwargs
    ):
        self.quota = quota
        self.used = used
        super().__init__(
            message=message,
            user_message="You've watched all your ads for today. Come back tomorrow to keep your streak!",
            context={"quota": quota, "used": used},
            **kwargs
        )


# ==========================================
# Persistence Errors
# ==========================================

class PersistenceError(AdStreakError):
    """
    Base class for persistence gateway failures

    Surfaced to the caller, which owns the retry policy.
    """

    def __init__(self, message: str = "Persistence gateway failure", **kwargs):
        kwargs.setdefault(
            "user_message",
            "We encountered an issue saving your progress. Please try again."
        )
        super().__init__(message=message, **kwargs)


class RecordNotFoundError(PersistenceError):
    """Requested progress record does not exist"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


class StaleRecordError(PersistenceError):
    """Optimistic version check failed on save; reload and retry"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Progress record was modified concurrently",
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        **kwargs
    ):
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            message=message,
            user_message="Your progress changed while we were saving. Please try again.",
            context={"expected_version": expected_version, "actual_version": actual_version},
            **kwargs
        )


# ==========================================
# External Provider Errors
# ==========================================

class ProviderError(AdStreakError):
    """Verification or payment provider failed"""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        **kwargs
    ):
        self.service = service
        super().__init__(
            message=message,
            user_message=f"We're having trouble reaching {service or 'the payment provider'}. Please try again later.",
            context={"service": service},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(AdStreakError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> AdStreakError:
    """
    Wrap external exceptions (psycopg, provider SDKs, etc.) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User identity if applicable
        context: Additional context

    Returns:
        Appropriate AdStreakError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="save_progress", user_id=identity)
    """
    if isinstance(error, AdStreakError):
        return error

    error_module = type(error).__module__ or ""

    if error_module.startswith("psycopg"):
        return PersistenceError(
            message=f"Database error during {operation}: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    if isinstance(error, (TimeoutError, OSError)):
        return PersistenceError(
            message=f"I/O error during {operation}: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    return AdStreakError(
        message=f"Unexpected error during {operation}: {error}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
