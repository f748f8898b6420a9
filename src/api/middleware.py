"""API middleware for rate limiting, CORS and request metrics"""
import logging
import os
import re
import time
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware

from src.observability.metrics import http_requests_total, http_request_duration_seconds

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)

# Identities are high-cardinality; collapse them in metric labels
_IDENTITY_SEGMENT = re.compile(r"^(/api/v1/progress/)[^/]+")


def setup_cors(app):
    """Configure CORS middleware"""
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    cors_origins = [origin.strip() for origin in cors_origins if origin.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(f"CORS configured for origins: {cors_origins}")


def setup_rate_limiting(app):
    """Configure rate limiting"""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    logger.info(f"Rate limiting configured (enabled={limiter.enabled})")


def normalize_path(path: str) -> str:
    """Replace the identity path segment with a placeholder"""
    return _IDENTITY_SEGMENT.sub(r"\1{identity}", path)


def setup_request_metrics(app):
    """Record request counts and latency for every HTTP request"""

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        method = request.method
        path = normalize_path(request.url.path)
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            http_requests_total.labels(method=method, endpoint=path, status=str(status_code)).inc()
            http_request_duration_seconds.labels(method=method, endpoint=path).observe(
                time.perf_counter() - start_time
            )
