"""
============================================================================
Rank Gateway v1.0.0
Gateway Configuration - Environment Driven
============================================================================

Reliability Level: L6 Critical
Input Constraints: Environment variables (optionally from a .env file)
Side Effects: Reads environment, logs configuration on load

This module provides configuration management for the security layer:
- Environment variable parsing with type safety
- Default values for optional configuration
- Fail-closed behavior on missing API key (CFG-001)
- Secrets redacted from to_dict()

ENVIRONMENT VARIABLES:
    - API_KEY: Shared secret for privileged calls (REQUIRED)
    - IP_ALLOWLIST: Comma-separated allowed IPs (default: allow all)
    - AUTH_LOCKOUT_THRESHOLD / AUTH_LOCKOUT_DURATION_SECONDS /
      AUTH_ATTEMPT_WINDOW_SECONDS: Brute-force lockout policy
    - DEDUP_WINDOW_SECONDS: Duplicate suppression window
    - RANK_COOLDOWN_SECONDS: Per-subject cooldown (0 disables)
    - RATE_LIMIT_WINDOW_SECONDS / RATE_LIMIT_MAX: Per-IP request budget
    - WEBHOOK_*: Notification sink, retries, backoff and breaker policy
    - SESSION_*: Upstream session probe interval, threshold and timeout
    - AUDIT_MAX_ENTRIES / AUDIT_MAX_AGE_SECONDS: Audit buffer bounds

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from rank_gateway.errors import ConfigurationError, ErrorCode

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_LOCKOUT_THRESHOLD = 5
DEFAULT_LOCKOUT_DURATION_SECONDS = 15 * 60
DEFAULT_ATTEMPT_WINDOW_SECONDS = 5 * 60
DEFAULT_DEDUP_WINDOW_SECONDS = 5.0
DEFAULT_COOLDOWN_SECONDS = 0
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 15 * 60
DEFAULT_RATE_LIMIT_MAX = 30
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10.0
DEFAULT_WEBHOOK_MAX_RETRIES = 3
DEFAULT_WEBHOOK_RETRY_DELAY_SECONDS = 5.0
DEFAULT_WEBHOOK_BACKOFF = "linear"
DEFAULT_WEBHOOK_MAX_QUEUE_SIZE = 100
DEFAULT_BREAKER_THRESHOLD = 5
DEFAULT_BREAKER_RESET_SECONDS = 60.0
DEFAULT_SESSION_CHECK_INTERVAL_SECONDS = 300.0
DEFAULT_SESSION_FAILURE_THRESHOLD = 3
DEFAULT_SESSION_PROBE_TIMEOUT_SECONDS = 10.0
DEFAULT_AUDIT_MAX_ENTRIES = 100
DEFAULT_AUDIT_MAX_AGE_SECONDS = 3600.0

VALID_BACKOFF_STRATEGIES = ("linear", "fixed", "exponential")

# Placeholder shipped in the example .env; never a valid key
PLACEHOLDER_API_KEY = "your-super-secret-api-key-change-this"
MIN_RECOMMENDED_KEY_LENGTH = 16


def _read_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            f"[GATEWAY-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


def _read_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(
            f"[GATEWAY-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


def _read_list(name: str) -> List[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class GatewayConfig:
    """
    Security layer configuration.

    Reliability Level: L6 Critical
    Input Constraints: api_key must be set before validate() passes
    Side Effects: Logs configuration on validation
    """

    api_key: Optional[str] = None
    ip_allowlist: List[str] = field(default_factory=list)

    # Brute-force lockout
    lockout_threshold: int = DEFAULT_LOCKOUT_THRESHOLD
    lockout_duration_seconds: float = DEFAULT_LOCKOUT_DURATION_SECONDS
    attempt_window_seconds: float = DEFAULT_ATTEMPT_WINDOW_SECONDS

    # Request shaping
    dedup_window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    rate_limit_window_seconds: float = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX

    # Webhook notifier
    webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS
    webhook_max_retries: int = DEFAULT_WEBHOOK_MAX_RETRIES
    webhook_retry_delay_seconds: float = DEFAULT_WEBHOOK_RETRY_DELAY_SECONDS
    webhook_backoff: str = DEFAULT_WEBHOOK_BACKOFF
    webhook_max_queue_size: int = DEFAULT_WEBHOOK_MAX_QUEUE_SIZE
    breaker_threshold: int = DEFAULT_BREAKER_THRESHOLD
    breaker_reset_seconds: float = DEFAULT_BREAKER_RESET_SECONDS

    # Session monitor
    session_check_interval_seconds: float = DEFAULT_SESSION_CHECK_INTERVAL_SECONDS
    session_failure_threshold: int = DEFAULT_SESSION_FAILURE_THRESHOLD
    session_probe_timeout_seconds: float = DEFAULT_SESSION_PROBE_TIMEOUT_SECONDS

    # Audit log
    audit_max_entries: int = DEFAULT_AUDIT_MAX_ENTRIES
    audit_max_age_seconds: float = DEFAULT_AUDIT_MAX_AGE_SECONDS

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            ConfigurationError: If required configuration is missing (CFG-001)
        """
        errors = []  # type: List[str]

        if not self.api_key:
            errors.append("API_KEY is required. This secures the API from unauthorized access.")
        elif self.api_key == PLACEHOLDER_API_KEY:
            errors.append("API_KEY still contains the default value. Set a unique secret key.")
        elif len(self.api_key) < MIN_RECOMMENDED_KEY_LENGTH:
            logger.warning(
                "[GATEWAY-CONFIG] API_KEY is short. Consider a longer key for better security."
            )

        positive_ints = {
            "AUTH_LOCKOUT_THRESHOLD": self.lockout_threshold,
            "RATE_LIMIT_MAX": self.rate_limit_max,
            "WEBHOOK_MAX_QUEUE_SIZE": self.webhook_max_queue_size,
            "WEBHOOK_BREAKER_THRESHOLD": self.breaker_threshold,
            "SESSION_FAILURE_THRESHOLD": self.session_failure_threshold,
            "AUDIT_MAX_ENTRIES": self.audit_max_entries,
        }
        for name, value in positive_ints.items():
            if value <= 0:
                errors.append(f"{name} must be positive, got: {value}")

        if self.cooldown_seconds < 0:
            errors.append(f"RANK_COOLDOWN_SECONDS must be non-negative, got: {self.cooldown_seconds}")

        if self.webhook_max_retries < 0:
            errors.append(f"WEBHOOK_MAX_RETRIES must be non-negative, got: {self.webhook_max_retries}")

        if self.webhook_backoff not in VALID_BACKOFF_STRATEGIES:
            errors.append(
                f"WEBHOOK_BACKOFF must be one of {', '.join(VALID_BACKOFF_STRATEGIES)}, "
                f"got: {self.webhook_backoff}"
            )

        if errors:
            error_msg = "Gateway configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{ErrorCode.CONFIG_INVALID}] {error_msg}")
            raise ConfigurationError(error_msg)

        logger.info(
            f"[GATEWAY-CONFIG] Configuration validated | "
            f"lockout={self.lockout_threshold}/{self.attempt_window_seconds}s | "
            f"dedup_window={self.dedup_window_seconds}s | "
            f"cooldown={self.cooldown_seconds}s | "
            f"webhook_enabled={self.webhook_url is not None} | "
            f"allowlist_count={len(self.ip_allowlist)}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "GatewayConfig":
        """
        Load configuration from environment variables.

        Args:
            validate: Whether to validate configuration after loading

        Raises:
            ConfigurationError: If required configuration is missing (CFG-001)
        """
        load_dotenv()

        config = cls(
            api_key=os.environ.get("API_KEY") or None,
            ip_allowlist=_read_list("IP_ALLOWLIST"),
            lockout_threshold=_read_int("AUTH_LOCKOUT_THRESHOLD", DEFAULT_LOCKOUT_THRESHOLD),
            lockout_duration_seconds=_read_float(
                "AUTH_LOCKOUT_DURATION_SECONDS", DEFAULT_LOCKOUT_DURATION_SECONDS
            ),
            attempt_window_seconds=_read_float(
                "AUTH_ATTEMPT_WINDOW_SECONDS", DEFAULT_ATTEMPT_WINDOW_SECONDS
            ),
            dedup_window_seconds=_read_float("DEDUP_WINDOW_SECONDS", DEFAULT_DEDUP_WINDOW_SECONDS),
            cooldown_seconds=_read_float("RANK_COOLDOWN_SECONDS", DEFAULT_COOLDOWN_SECONDS),
            rate_limit_window_seconds=_read_float(
                "RATE_LIMIT_WINDOW_SECONDS", DEFAULT_RATE_LIMIT_WINDOW_SECONDS
            ),
            rate_limit_max=_read_int("RATE_LIMIT_MAX", DEFAULT_RATE_LIMIT_MAX),
            webhook_url=os.environ.get("WEBHOOK_URL") or None,
            webhook_timeout_seconds=_read_float(
                "WEBHOOK_TIMEOUT_SECONDS", DEFAULT_WEBHOOK_TIMEOUT_SECONDS
            ),
            webhook_max_retries=_read_int("WEBHOOK_MAX_RETRIES", DEFAULT_WEBHOOK_MAX_RETRIES),
            webhook_retry_delay_seconds=_read_float(
                "WEBHOOK_RETRY_DELAY_SECONDS", DEFAULT_WEBHOOK_RETRY_DELAY_SECONDS
            ),
            webhook_backoff=os.environ.get("WEBHOOK_BACKOFF", DEFAULT_WEBHOOK_BACKOFF).strip().lower(),
            webhook_max_queue_size=_read_int(
                "WEBHOOK_MAX_QUEUE_SIZE", DEFAULT_WEBHOOK_MAX_QUEUE_SIZE
            ),
            breaker_threshold=_read_int("WEBHOOK_BREAKER_THRESHOLD", DEFAULT_BREAKER_THRESHOLD),
            breaker_reset_seconds=_read_float(
                "WEBHOOK_BREAKER_RESET_SECONDS", DEFAULT_BREAKER_RESET_SECONDS
            ),
            session_check_interval_seconds=_read_float(
                "SESSION_CHECK_INTERVAL_SECONDS", DEFAULT_SESSION_CHECK_INTERVAL_SECONDS
            ),
            session_failure_threshold=_read_int(
                "SESSION_FAILURE_THRESHOLD", DEFAULT_SESSION_FAILURE_THRESHOLD
            ),
            session_probe_timeout_seconds=_read_float(
                "SESSION_PROBE_TIMEOUT_SECONDS", DEFAULT_SESSION_PROBE_TIMEOUT_SECONDS
            ),
            audit_max_entries=_read_int("AUDIT_MAX_ENTRIES", DEFAULT_AUDIT_MAX_ENTRIES),
            audit_max_age_seconds=_read_float(
                "AUDIT_MAX_AGE_SECONDS", DEFAULT_AUDIT_MAX_AGE_SECONDS
            ),
        )

        logger.info(
            f"[GATEWAY-CONFIG] Loading configuration from environment | "
            f"API_KEY_SET={config.api_key is not None} | "
            f"IP_ALLOWLIST_COUNT={len(config.ip_allowlist)} | "
            f"WEBHOOK_URL_SET={config.webhook_url is not None}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view with secrets redacted."""
        return {
            "api_key_set": self.api_key is not None,
            "ip_allowlist": list(self.ip_allowlist),
            "lockout_threshold": self.lockout_threshold,
            "lockout_duration_seconds": self.lockout_duration_seconds,
            "attempt_window_seconds": self.attempt_window_seconds,
            "dedup_window_seconds": self.dedup_window_seconds,
            "cooldown_seconds": self.cooldown_seconds,
            "rate_limit_window_seconds": self.rate_limit_window_seconds,
            "rate_limit_max": self.rate_limit_max,
            "webhook_enabled": self.webhook_url is not None,
            "webhook_timeout_seconds": self.webhook_timeout_seconds,
            "webhook_max_retries": self.webhook_max_retries,
            "webhook_retry_delay_seconds": self.webhook_retry_delay_seconds,
            "webhook_backoff": self.webhook_backoff,
            "webhook_max_queue_size": self.webhook_max_queue_size,
            "breaker_threshold": self.breaker_threshold,
            "breaker_reset_seconds": self.breaker_reset_seconds,
            "session_check_interval_seconds": self.session_check_interval_seconds,
            "session_failure_threshold": self.session_failure_threshold,
            "session_probe_timeout_seconds": self.session_probe_timeout_seconds,
            "audit_max_entries": self.audit_max_entries,
            "audit_max_age_seconds": self.audit_max_age_seconds,
        }


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance = None  # type: Optional[GatewayConfig]


def get_gateway_config(validate: bool = True) -> GatewayConfig:
    """Return the process-wide configuration, loading it on first access."""
    global _config_instance

    if _config_instance is None:
        _config_instance = GatewayConfig.from_environment(validate=validate)

    return _config_instance


def reset_gateway_config() -> None:
    """Clear the cached configuration (used between tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[GATEWAY-CONFIG] Configuration instance reset")


__all__ = [
    "GatewayConfig",
    "get_gateway_config",
    "reset_gateway_config",
    "VALID_BACKOFF_STRATEGIES",
]
