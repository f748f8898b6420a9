"""Tests for economy configuration validation"""
import pytest
from decimal import Decimal
from pydantic import ValidationError

import src.config as config_module
from src.config import EconomyConfig, DEFAULT_QUOTA_THRESHOLDS, DEFAULT_MILESTONE_BONUSES, validate_config
from src.exceptions import ConfigurationError


class TestEconomyConfig:
    """Test EconomyConfig defaults and validation"""

    def test_defaults(self):
        """Test defaults match the published economy"""
        config = EconomyConfig()

        assert config.base_quota_day1 == 3
        assert config.max_daily_actions == 100
        assert config.unverified_daily_actions == 1
        assert config.base_reward_per_action == 100
        assert config.verified_multiplier == 20
        assert config.unverified_multiplier == 1
        assert config.streak_multiplier_interval == 7
        assert config.skip_penalty_factor == Decimal("0.5")
        assert config.points_per_currency_unit == 10_000
        assert config.min_claim_currency == Decimal("0.01")
        assert config.developer_fee_rate == Decimal("0.015")
        assert config.referral_bonus_points == 5_000
        assert config.history_retention_days == 90
        assert config.calendar_window_days == 30
        assert config.expiry_warning_hours == 2
        assert config.reference_timezone == "UTC"
        assert config.quota_thresholds == DEFAULT_QUOTA_THRESHOLDS
        assert config.milestone_bonuses == DEFAULT_MILESTONE_BONUSES

    def test_tables_are_not_shared(self):
        """Test each config gets its own copy of the tables"""
        first = EconomyConfig()
        first.quota_thresholds[1] = 99
        assert EconomyConfig().quota_thresholds[1] == 3

    def test_non_monotonic_quota_table_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            EconomyConfig(quota_thresholds={1: 10, 7: 5})

        assert "monotonic" in str(exc_info.value)

    def test_quota_below_base_rejected(self):
        with pytest.raises(ValidationError):
            EconomyConfig(base_quota_day1=10, quota_thresholds={1: 3})

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            EconomyConfig(reference_timezone="Mars/Olympus_Mons")

    def test_penalty_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            EconomyConfig(skip_penalty_factor=Decimal("1.5"))

    def test_timezone_property(self):
        config = EconomyConfig(reference_timezone="Europe/Berlin")
        assert config.timezone.key == "Europe/Berlin"


class TestFromEnv:
    """Test environment overrides"""

    def test_overrides_scalar_fields(self, monkeypatch):
        monkeypatch.setenv("ADSTREAK_VERIFIED_MULTIPLIER", "10")
        monkeypatch.setenv("ADSTREAK_REFERENCE_TIMEZONE", "Asia/Tokyo")
        monkeypatch.setenv("ADSTREAK_DEVELOPER_FEE_RATE", "0.02")

        config = EconomyConfig.from_env()

        assert config.verified_multiplier == 10
        assert config.reference_timezone == "Asia/Tokyo"
        assert config.developer_fee_rate == Decimal("0.02")

    def test_invalid_override_rejected(self, monkeypatch):
        monkeypatch.setenv("ADSTREAK_POINTS_PER_CURRENCY_UNIT", "0")

        with pytest.raises(ConfigurationError) as exc_info:
            EconomyConfig.from_env()

        assert exc_info.value.config_key == "ADSTREAK_POINTS_PER_CURRENCY_UNIT"
        assert isinstance(exc_info.value.cause, ValidationError)

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("TEST_BASE_REWARD_PER_ACTION", "7")
        assert EconomyConfig.from_env(prefix="TEST_").base_reward_per_action == 7


class TestValidateConfig:
    """Test startup validation of service settings"""

    def test_memory_backend_is_valid(self, monkeypatch):
        monkeypatch.setattr(config_module, "STORAGE_BACKEND", "memory")
        monkeypatch.setattr(config_module, "SAVE_RETRY_ATTEMPTS", 3)

        validate_config()

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setattr(config_module, "STORAGE_BACKEND", "redis")

        with pytest.raises(ConfigurationError) as exc_info:
            validate_config()

        assert exc_info.value.config_key == "STORAGE_BACKEND"

    def test_postgres_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(config_module, "STORAGE_BACKEND", "postgres")
        monkeypatch.setattr(config_module, "DATABASE_URL", "")

        with pytest.raises(ConfigurationError) as exc_info:
            validate_config()

        assert exc_info.value.config_key == "DATABASE_URL"

    def test_retry_attempts_must_be_positive(self, monkeypatch):
        monkeypatch.setattr(config_module, "STORAGE_BACKEND", "memory")
        monkeypatch.setattr(config_module, "SAVE_RETRY_ATTEMPTS", 0)

        with pytest.raises(ConfigurationError) as exc_info:
            validate_config()

        assert exc_info.value.config_key == "SAVE_RETRY_ATTEMPTS"
