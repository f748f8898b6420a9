"""
Service Layer Package

This package contains the services that sit between the presentation layer
(FastAPI routes) and the persistence gateway.

Core Services:
- ProgressService: Sessions, actions, claims, achievements, referrals

External Integration Services:
- RewardProvider: Verification and payment provider interface
- SimulatedRewardProvider: In-process provider for development and tests
"""

from src.services.progress_service import ProgressService, ActionResult, ClaimResult
from src.services.provider import RewardProvider, SimulatedRewardProvider

__all__ = [
    # Core Services
    "ProgressService",
    "ActionResult",
    "ClaimResult",
    # External Integration Services
    "RewardProvider",
    "SimulatedRewardProvider",
]
