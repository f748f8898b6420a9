"""Global test fixtures and utilities for AdStreak tests"""
import pytest
from datetime import datetime, date, timedelta, timezone

from src.config import EconomyConfig
from src.db.gateway import InMemoryProgressStore
from src.gamification.ledger import new_progress
from src.models.progress import ActivityEntry, UserProgress
from src.services.progress_service import ProgressService
from src.services.provider import SimulatedRewardProvider


# ============================================================================
# Time Fixtures
# ============================================================================

FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for services"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def now():
    """Fixed timezone-aware 'now' (mid-day UTC)"""
    return FIXED_NOW


@pytest.fixture
def today(now):
    return now.date()


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# User & Config Fixtures
# ============================================================================

@pytest.fixture
def test_identity():
    """Standard test wallet identity"""
    return "0x1234567890abcdef"


@pytest.fixture
def config():
    """Default economy configuration"""
    return EconomyConfig()


@pytest.fixture
def test_api_key():
    """Standard test API key"""
    return "test_api_key_12345"


# ============================================================================
# Record Fixtures
# ============================================================================

def _history_for(end: date, days: int, actions: int = 1) -> tuple[ActivityEntry, ...]:
    return tuple(
        ActivityEntry(day=end - timedelta(days=offset), actions_completed=actions)
        for offset in range(days)
    )


@pytest.fixture
def history_for():
    """Builds an unbroken run of `days` active days ending on `end`"""
    return _history_for


@pytest.fixture
def make_progress(test_identity, now):
    """Factory for progress records with overridden fields"""

    def _make(**overrides) -> UserProgress:
        base = new_progress(overrides.pop("identity", test_identity), now)
        data = {name: getattr(base, name) for name in UserProgress.model_fields}
        data.update(overrides)
        return UserProgress.model_validate(data)

    return _make


@pytest.fixture
def fresh_progress(make_progress):
    return make_progress()


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def memory_store():
    """Empty in-memory persistence gateway"""
    return InMemoryProgressStore()


@pytest.fixture
def provider():
    """Simulated provider with nobody verified and every transfer succeeding"""
    return SimulatedRewardProvider()


@pytest.fixture
def service(memory_store, provider, config, clock):
    """ProgressService over the in-memory store with a controllable clock"""
    return ProgressService(memory_store, provider, config=config, clock=clock)
