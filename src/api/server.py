"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.routes import router
from src.api.metrics_routes import router as metrics_router
from src.api.middleware import setup_cors, setup_rate_limiting, setup_request_metrics
from src.config import EconomyConfig, STORAGE_BACKEND
from src.db.connection import db
from src.db.gateway import InMemoryProgressStore, PostgresProgressStore
from src.exceptions import (
    AdStreakError,
    InvalidArgumentError,
    LedgerError,
    RecordNotFoundError,
    StaleRecordError,
    PersistenceError,
    ProviderError,
)
from src.observability.metrics import set_app_info
from src.services.progress_service import ProgressService
from src.services.provider import SimulatedRewardProvider

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# Most specific first
ERROR_STATUS_CODES: list[tuple[type[AdStreakError], int]] = [
    (InvalidArgumentError, 422),
    (LedgerError, 409),
    (StaleRecordError, 409),
    (RecordNotFoundError, 404),
    (PersistenceError, 503),
    (ProviderError, 502),
]


def status_code_for(error: AdStreakError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


async def _build_service(app: FastAPI) -> ProgressService:
    config = EconomyConfig.from_env()
    if STORAGE_BACKEND == "memory":
        gateway = InMemoryProgressStore()
        logger.warning("Using in-memory progress store; data is lost on restart")
    else:
        await db.init_pool()
        logger.info("Database pool initialized")
        gateway = PostgresProgressStore(db)
        await gateway.init_schema()

    app.state.storage_backend = STORAGE_BACKEND
    # No wallet transport is wired in; transfers are simulated
    return ProgressService(gateway, SimulatedRewardProvider(), config=config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application"""
    # Startup
    logger.info("Starting API server...")
    if getattr(app.state, "progress_service", None) is None:
        app.state.progress_service = await _build_service(app)

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    if db.is_initialized:
        await db.close_pool()
        logger.info("Database pool closed")


def create_api_application(service: Optional[ProgressService] = None) -> FastAPI:
    """
    Create and configure FastAPI application

    Args:
        service: Pre-built service (tests); built from configuration on startup otherwise
    """
    app = FastAPI(
        title="AdStreak API",
        description="Watch-to-earn reward economy and streak engine",
        version=APP_VERSION,
        lifespan=lifespan
    )
    app.state.progress_service = service
    if service is not None:
        app.state.storage_backend = type(service.gateway).__name__

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    setup_request_metrics(app)

    # Include routes
    app.include_router(router)
    app.include_router(metrics_router)

    @app.exception_handler(AdStreakError)
    async def domain_exception_handler(request: Request, exc: AdStreakError):
        return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)}
        )

    set_app_info(version=APP_VERSION)
    logger.info("FastAPI application created")

    return app
