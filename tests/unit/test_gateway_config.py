"""
Unit Tests for Gateway Configuration Parsing

Reliability Level: L6 Critical
Python 3.8 Compatible

Tests the gateway configuration module:
- Default values for optional configuration
- Custom values from environment variables
- Invalid numeric values fall back to defaults
- Missing API_KEY fails closed with CFG-001
"""

import os

import pytest

from rank_gateway.config import (
    DEFAULT_ATTEMPT_WINDOW_SECONDS,
    DEFAULT_LOCKOUT_THRESHOLD,
    DEFAULT_RATE_LIMIT_MAX,
    PLACEHOLDER_API_KEY,
    GatewayConfig,
    get_gateway_config,
    reset_gateway_config,
)
from rank_gateway.errors import ConfigurationError


ENV_VARS = [
    "API_KEY",
    "IP_ALLOWLIST",
    "AUTH_LOCKOUT_THRESHOLD",
    "AUTH_ATTEMPT_WINDOW_SECONDS",
    "RANK_COOLDOWN_SECONDS",
    "RATE_LIMIT_MAX",
    "WEBHOOK_URL",
    "WEBHOOK_BACKOFF",
    "WEBHOOK_MAX_RETRIES",
]


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_environment():
    """
    Clean environment variables before and after each test.

    This ensures tests are isolated and don't affect each other.
    """
    original_env = {}
    for var in ENV_VARS:
        original_env[var] = os.environ.get(var)
        if var in os.environ:
            del os.environ[var]

    reset_gateway_config()

    yield

    for var, value in original_env.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]

    reset_gateway_config()


# =============================================================================
# Test Default Values
# =============================================================================

class TestDefaults:

    def test_defaults_when_only_api_key_set(self) -> None:
        os.environ["API_KEY"] = "a-long-enough-secret-key"

        config = GatewayConfig.from_environment()

        assert config.lockout_threshold == DEFAULT_LOCKOUT_THRESHOLD
        assert config.attempt_window_seconds == DEFAULT_ATTEMPT_WINDOW_SECONDS
        assert config.rate_limit_max == DEFAULT_RATE_LIMIT_MAX
        assert config.cooldown_seconds == 0
        assert config.webhook_url is None
        assert config.webhook_backoff == "linear"
        assert config.ip_allowlist == []


# =============================================================================
# Test Custom Values
# =============================================================================

class TestCustomValues:

    def test_values_read_from_environment(self) -> None:
        os.environ["API_KEY"] = "a-long-enough-secret-key"
        os.environ["IP_ALLOWLIST"] = "10.0.0.1, localhost ,"
        os.environ["AUTH_LOCKOUT_THRESHOLD"] = "3"
        os.environ["RANK_COOLDOWN_SECONDS"] = "30"
        os.environ["WEBHOOK_URL"] = "https://hooks.example.test/x"
        os.environ["WEBHOOK_BACKOFF"] = "Exponential"

        config = GatewayConfig.from_environment()

        assert config.ip_allowlist == ["10.0.0.1", "localhost"]
        assert config.lockout_threshold == 3
        assert config.cooldown_seconds == 30
        assert config.webhook_url == "https://hooks.example.test/x"
        assert config.webhook_backoff == "exponential"

    def test_invalid_number_falls_back_to_default(self) -> None:
        os.environ["API_KEY"] = "a-long-enough-secret-key"
        os.environ["RATE_LIMIT_MAX"] = "plenty"

        config = GatewayConfig.from_environment()
        assert config.rate_limit_max == DEFAULT_RATE_LIMIT_MAX


# =============================================================================
# Test Validation
# =============================================================================

class TestValidation:

    def test_missing_api_key_fails_closed(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            GatewayConfig.from_environment()

        assert exc_info.value.error_code == "CFG-001"
        assert "API_KEY" in exc_info.value.message

    def test_placeholder_api_key_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            GatewayConfig(api_key=PLACEHOLDER_API_KEY).validate()

    def test_unknown_backoff_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            GatewayConfig(api_key="a-long-enough-secret-key", webhook_backoff="random").validate()
        assert "WEBHOOK_BACKOFF" in exc_info.value.message

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            GatewayConfig(api_key="a-long-enough-secret-key", webhook_max_retries=-1).validate()

    def test_validation_can_be_skipped(self) -> None:
        config = GatewayConfig.from_environment(validate=False)
        assert config.api_key is None


# =============================================================================
# Test Accessors
# =============================================================================

class TestAccessors:

    def test_to_dict_redacts_api_key(self) -> None:
        data = GatewayConfig(api_key="a-long-enough-secret-key").to_dict()

        assert data["api_key_set"] is True
        assert "a-long-enough-secret-key" not in str(data)

    def test_get_gateway_config_is_cached_until_reset(self) -> None:
        os.environ["API_KEY"] = "a-long-enough-secret-key"
        first = get_gateway_config()
        assert get_gateway_config() is first

        reset_gateway_config()
        assert get_gateway_config() is not first
