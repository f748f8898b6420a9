"""
Prometheus metrics definitions for the AdStreak reward engine.

Organized by category:
- HTTP/API metrics: Request counts, latency
- Ledger metrics: Actions, points, claims, achievements, streak resets
- Persistence metrics: Gateway operation latency and failures

Metrics are exposed at the /metrics endpoint for Prometheus scraping.
"""

import logging
from prometheus_client import Counter, Histogram, Info

logger = logging.getLogger(__name__)

# =============================================================================
# HTTP/API Metrics
# =============================================================================

http_requests_total = Counter(
    "adstreak_http_requests_total",
    "Total HTTP requests received",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "adstreak_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0],
)

# =============================================================================
# Ledger Metrics
# =============================================================================

actions_recorded_total = Counter(
    "adstreak_actions_recorded_total",
    "Rewarded actions recorded",
    ["verified", "completed"],  # "true"/"false"
)

points_awarded_total = Counter(
    "adstreak_points_awarded_total",
    "Points credited to users",
    ["source"],  # action, milestone, achievement, referral, referral_bonus
)

claims_total = Counter(
    "adstreak_claims_total",
    "Point claims by outcome",
    ["status"],  # succeeded, rejected, reversed, unresolved
)

points_claimed_total = Counter(
    "adstreak_points_claimed_total",
    "Points converted to currency",
)

achievements_unlocked_total = Counter(
    "adstreak_achievements_unlocked_total",
    "Achievements unlocked",
    ["achievement_id"],
)

streak_resets_total = Counter(
    "adstreak_streak_resets_total",
    "Streaks reset after a missed day",
)

quota_rejections_total = Counter(
    "adstreak_quota_rejections_total",
    "Actions refused because the daily quota was used up",
)

# =============================================================================
# Persistence Metrics
# =============================================================================

gateway_operation_duration_seconds = Histogram(
    "adstreak_gateway_operation_duration_seconds",
    "Persistence gateway operation latency in seconds",
    ["backend", "operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)

gateway_errors_total = Counter(
    "adstreak_gateway_errors_total",
    "Persistence gateway failures",
    ["backend", "operation", "error_type"],
)

# =============================================================================
# Application Info
# =============================================================================

app_info = Info("adstreak_app", "Application information")


def set_app_info(version: str, environment: str = "production") -> None:
    """Publish static application info"""
    app_info.info({"version": version, "environment": environment})
    logger.info(f"Application info set: version={version}, environment={environment}")
