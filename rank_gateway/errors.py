"""
============================================================================
Rank Gateway v1.0.0
Error Taxonomy - Structured, Machine-Readable Failures
============================================================================

Reliability Level: L6 Critical
Input Constraints: None
Side Effects: None

PROPAGATION POLICY
------------------
- AuthError, RateLimitError, DuplicateRequestError, CooldownActiveError
  are terminal per request: never retried, surfaced immediately with a
  structured body.
- DeliveryError stays inside the webhook notifier (retried, then dropped).
- SessionError accumulates through hysteresis inside the session monitor.
- Nothing here is fatal to the process.

ERROR CODES
-----------
    AUTH-001: Missing credential            (401)
    AUTH-002: Invalid credential            (403)
    AUTH-003: IP address not allowed        (403)
    AUTH-004: Locked out after failures     (429)
    RATE-001: Request rate limit exceeded   (429)
    DEDUP-001: Duplicate request            (429)
    COOL-001: Subject cooldown active       (429)
    HOOK-001: Webhook delivery failed
    SESS-001: Session probe failed
    SESS-002: Session identity mismatch
    CFG-001: Configuration invalid
============================================================================
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Machine-readable rejection kinds exposed in the response body."""
    MISSING_CREDENTIAL = "MissingCredential"
    INVALID_CREDENTIAL = "InvalidCredential"
    IP_DENIED = "IpDenied"
    LOCKED_OUT = "LockedOut"
    RATE_LIMITED = "RateLimited"
    DUPLICATE_REQUEST = "DuplicateRequest"
    COOLDOWN_ACTIVE = "CooldownActive"


class ErrorCode:
    """Gateway error codes for audit logging."""
    MISSING_CREDENTIAL = "AUTH-001"
    INVALID_CREDENTIAL = "AUTH-002"
    IP_DENIED = "AUTH-003"
    LOCKED_OUT = "AUTH-004"
    RATE_LIMITED = "RATE-001"
    DUPLICATE_REQUEST = "DEDUP-001"
    COOLDOWN_ACTIVE = "COOL-001"
    DELIVERY_FAILED = "HOOK-001"
    PROBE_FAILED = "SESS-001"
    IDENTITY_MISMATCH = "SESS-002"
    CONFIG_INVALID = "CFG-001"


# HTTP status mapping for request-terminal rejections
HTTP_STATUS_BY_KIND = {
    ErrorKind.MISSING_CREDENTIAL: 401,
    ErrorKind.INVALID_CREDENTIAL: 403,
    ErrorKind.IP_DENIED: 403,
    ErrorKind.LOCKED_OUT: 429,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.DUPLICATE_REQUEST: 429,
    ErrorKind.COOLDOWN_ACTIVE: 429,
}

ERROR_CODE_BY_KIND = {
    ErrorKind.MISSING_CREDENTIAL: ErrorCode.MISSING_CREDENTIAL,
    ErrorKind.INVALID_CREDENTIAL: ErrorCode.INVALID_CREDENTIAL,
    ErrorKind.IP_DENIED: ErrorCode.IP_DENIED,
    ErrorKind.LOCKED_OUT: ErrorCode.LOCKED_OUT,
    ErrorKind.RATE_LIMITED: ErrorCode.RATE_LIMITED,
    ErrorKind.DUPLICATE_REQUEST: ErrorCode.DUPLICATE_REQUEST,
    ErrorKind.COOLDOWN_ACTIVE: ErrorCode.COOLDOWN_ACTIVE,
}

DEFAULT_MESSAGES = {
    ErrorKind.MISSING_CREDENTIAL: "Please provide an API key in the x-api-key header",
    ErrorKind.INVALID_CREDENTIAL: "The provided API key is incorrect",
    ErrorKind.IP_DENIED: "Your IP address is not authorized to access this API",
    ErrorKind.LOCKED_OUT: "Too many failed authentication attempts",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded. Please try again later",
    ErrorKind.DUPLICATE_REQUEST: (
        "This operation was recently submitted. "
        "Please wait a few seconds before retrying"
    ),
    ErrorKind.COOLDOWN_ACTIVE: "This subject's rank was recently changed",
}


class GatewayError(Exception):
    """
    Request-terminal rejection with a structured body.

    Reliability Level: L6 Critical
    Input Constraints: kind must be an ErrorKind
    Side Effects: None
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.error_code = ERROR_CODE_BY_KIND[kind]
        self.message = message or DEFAULT_MESSAGES[kind]
        self.retry_after = retry_after
        super().__init__(f"[{self.error_code}] {self.message}")

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_body(self) -> Dict[str, Any]:
        """Render the rejection as the wire body shared by every guard."""
        body = {
            "success": False,
            "error": self.kind.value,
            "message": self.message,
        }  # type: Dict[str, Any]
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        return body


class AuthError(GatewayError):
    """Missing/invalid credential, IP denied or locked out."""


class RateLimitError(GatewayError):
    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        super().__init__(ErrorKind.RATE_LIMITED, message, retry_after)


class DuplicateRequestError(GatewayError):
    def __init__(
        self,
        original_request_id: Optional[str],
        retry_after: Optional[int] = None,
    ) -> None:
        self.original_request_id = original_request_id
        super().__init__(ErrorKind.DUPLICATE_REQUEST, retry_after=retry_after)

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        if self.original_request_id is not None:
            body["originalRequestId"] = self.original_request_id
        return body


class CooldownActiveError(GatewayError):
    def __init__(self, remaining_seconds: int) -> None:
        super().__init__(
            ErrorKind.COOLDOWN_ACTIVE,
            f"This subject's rank was recently changed. Please wait "
            f"{remaining_seconds} seconds before making another change.",
            remaining_seconds,
        )


class DeliveryError(Exception):
    """
    Transient webhook failure (network, timeout or non-2xx status).

    Never leaves the notifier: callers of send() do not observe it.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.error_code = ErrorCode.DELIVERY_FAILED
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{self.error_code}] {message}")


class SessionError(Exception):
    """Session probe failure or identity mismatch."""

    def __init__(self, message: str, error_code: str = ErrorCode.PROBE_FAILED) -> None:
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""

    def __init__(self, message: str) -> None:
        self.error_code = ErrorCode.CONFIG_INVALID
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")


__all__ = [
    "ErrorKind",
    "ErrorCode",
    "HTTP_STATUS_BY_KIND",
    "GatewayError",
    "AuthError",
    "RateLimitError",
    "DuplicateRequestError",
    "CooldownActiveError",
    "DeliveryError",
    "SessionError",
    "ConfigurationError",
]
