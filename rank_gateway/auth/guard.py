"""
============================================================================
Rank Gateway v1.0.0
Auth Guard - API Key Verification with Brute-Force Lockout
============================================================================

Reliability Level: L6 Critical
Input Constraints: Client IP and the x-api-key header value
Side Effects: Tracks failed attempts per IP, periodic sweep

VERIFICATION ORDER
------------------
1. IP allowlist (if configured) - AUTH-003, independent of lockout
2. Lockout check - AUTH-004, credential not compared at all
3. Missing credential - AUTH-001, failure recorded
4. Length check, then constant-time comparison - AUTH-002, failure recorded

LOCKOUT RULES
-------------
- Failures older than the attempt window are pruned on every read/write
- threshold failures inside the window lock the IP for lockout_duration
- Reading an expired lock clears both the lock and the attempt list
- Success clears the record entirely

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import hmac
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.errors import AuthError, ErrorCode, ErrorKind
from rank_gateway.observability import metrics
from rank_gateway.scheduling import PeriodicTask

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_LOCK_THRESHOLD = 5
DEFAULT_LOCK_DURATION_SECONDS = 15 * 60
DEFAULT_ATTEMPT_WINDOW_SECONDS = 5 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0

# Allowlist alias expanded to loopback addresses
LOCALHOST_ALIASES = ("127.0.0.1", "::1", "::ffff:127.0.0.1")

KeySource = Union[str, Callable[[], str]]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class FailedAuthRecord:
    """
    Failed attempts for one IP.

    Reliability Level: L6 Critical
    Side Effects: None
    """
    ip: str
    attempts: List[float] = field(default_factory=list)
    locked_until: Optional[float] = None

    def prune(self, now: float, window_seconds: float) -> None:
        self.attempts = [t for t in self.attempts if (now - t) < window_seconds]

    def is_empty(self) -> bool:
        return not self.attempts and self.locked_until is None


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    reason: Optional[ErrorKind] = None
    retry_after_seconds: Optional[int] = None

    def raise_for_rejection(self) -> None:
        """Raise the matching AuthError when the check failed."""
        if self.ok:
            return
        message = None
        if self.reason is ErrorKind.LOCKED_OUT:
            message = (
                f"Locked due to too many failed authentication attempts. "
                f"Try again in {self.retry_after_seconds} seconds."
            )
        raise AuthError(self.reason, message, self.retry_after_seconds)


# =============================================================================
# AUTH GUARD
# =============================================================================

class AuthGuard:
    """
    IP allowlist, constant-time key verification and failed-attempt lockout.

    Reliability Level: L6 Critical
    Thread Safety: Re-entrant lock around the failed-attempt map
    Side Effects: Owns a PeriodicTask that prunes idle records

    USAGE:
        guard = AuthGuard(key_source=lambda: config.api_key)
        result = guard.verify(client_ip, request.headers.get("x-api-key"))
        result.raise_for_rejection()
    """

    def __init__(
        self,
        key_source: KeySource,
        ip_allowlist: Optional[Iterable[str]] = None,
        lock_threshold: int = DEFAULT_LOCK_THRESHOLD,
        lock_duration_seconds: float = DEFAULT_LOCK_DURATION_SECONDS,
        attempt_window_seconds: float = DEFAULT_ATTEMPT_WINDOW_SECONDS,
        clock: Optional[Clock] = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if lock_threshold <= 0:
            raise ValueError(f"lock_threshold must be positive, got: {lock_threshold}")

        self._key_source = key_source
        self._ip_allowlist = [ip.strip() for ip in (ip_allowlist or []) if ip.strip()]
        self._lock_threshold = lock_threshold
        self._lock_duration_seconds = lock_duration_seconds
        self._attempt_window_seconds = attempt_window_seconds
        self._clock = clock or SystemClock()
        self._records = {}  # type: Dict[str, FailedAuthRecord]
        self._lock = threading.RLock()
        self._sweeper = PeriodicTask("auth-guard-sweep", sweep_interval_seconds, self.sweep)

        logger.info(
            f"[AUTH] AuthGuard initialized | lock_threshold={lock_threshold} | "
            f"lock_duration={lock_duration_seconds}s | "
            f"attempt_window={attempt_window_seconds}s | "
            f"allowlist_count={len(self._ip_allowlist)}"
        )

    # -------------------------------------------------------------------------
    # Allowlist
    # -------------------------------------------------------------------------

    def is_ip_allowed(self, ip: str) -> bool:
        """An empty allowlist allows every IP."""
        if not self._ip_allowlist:
            return True
        if "*" in self._ip_allowlist or ip in self._ip_allowlist:
            return True
        return "localhost" in self._ip_allowlist and ip in LOCALHOST_ALIASES

    # -------------------------------------------------------------------------
    # Lockout bookkeeping
    # -------------------------------------------------------------------------

    def _read_record(self, ip: str, now: float) -> Optional[FailedAuthRecord]:
        """Fetch a record with expiry and pruning applied (lock held)."""
        record = self._records.get(ip)
        if record is None:
            return None

        if record.locked_until is not None and now >= record.locked_until:
            record.locked_until = None
            record.attempts = []
            logger.info(f"[AUTH] Lockout expired | ip={ip}")
        else:
            record.prune(now, self._attempt_window_seconds)

        return record

    def is_locked_out(self, ip: str) -> bool:
        with self._lock:
            record = self._read_record(ip, self._clock.time())
            return record is not None and record.locked_until is not None

    def lockout_remaining_seconds(self, ip: str) -> int:
        with self._lock:
            now = self._clock.time()
            record = self._read_record(ip, now)
            if record is None or record.locked_until is None:
                return 0
            return max(1, math.ceil(record.locked_until - now))

    def record_failure(self, ip: str) -> None:
        """
        Append a failed attempt and lock the IP at the threshold.

        Side Effects: May set locked_until = now + lock_duration
        """
        with self._lock:
            now = self._clock.time()
            record = self._read_record(ip, now)
            if record is None:
                record = FailedAuthRecord(ip=ip)
                self._records[ip] = record

            record.attempts.append(now)

            if len(record.attempts) >= self._lock_threshold and record.locked_until is None:
                record.locked_until = now + self._lock_duration_seconds
                metrics.record_lockout()
                logger.warning(
                    f"[{ErrorCode.LOCKED_OUT}] IP locked out | ip={ip} | "
                    f"failed_attempts={len(record.attempts)} | "
                    f"lock_duration={self._lock_duration_seconds}s"
                )

    def clear_failures(self, ip: str) -> None:
        with self._lock:
            self._records.pop(ip, None)

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def _expected_key(self) -> str:
        if callable(self._key_source):
            return self._key_source()
        return self._key_source

    def verify(self, ip: str, supplied_key: Optional[str]) -> AuthResult:
        """
        Verify a privileged request's origin and credential.

        Args:
            ip: Client IP address
            supplied_key: Value of the x-api-key header (None if absent)

        Returns:
            AuthResult(ok=True) on success, otherwise the rejection reason
        """
        if not self.is_ip_allowed(ip):
            logger.warning(f"[{ErrorCode.IP_DENIED}] Request blocked - IP not in allowlist | ip={ip}")
            metrics.record_auth_rejection(ErrorKind.IP_DENIED.value)
            return AuthResult(ok=False, reason=ErrorKind.IP_DENIED)

        with self._lock:
            if self.is_locked_out(ip):
                retry_after = self.lockout_remaining_seconds(ip)
                logger.warning(
                    f"[{ErrorCode.LOCKED_OUT}] Request blocked - IP locked out | "
                    f"ip={ip} | retry_after={retry_after}s"
                )
                metrics.record_auth_rejection(ErrorKind.LOCKED_OUT.value)
                return AuthResult(
                    ok=False,
                    reason=ErrorKind.LOCKED_OUT,
                    retry_after_seconds=retry_after,
                )

            if not supplied_key:
                self.record_failure(ip)
                logger.info(f"[{ErrorCode.MISSING_CREDENTIAL}] No API key provided | ip={ip}")
                metrics.record_auth_rejection(ErrorKind.MISSING_CREDENTIAL.value)
                return AuthResult(ok=False, reason=ErrorKind.MISSING_CREDENTIAL)

            if not self._keys_match(supplied_key):
                self.record_failure(ip)
                logger.warning(f"[{ErrorCode.INVALID_CREDENTIAL}] Invalid API key | ip={ip}")
                metrics.record_auth_rejection(ErrorKind.INVALID_CREDENTIAL.value)
                return AuthResult(ok=False, reason=ErrorKind.INVALID_CREDENTIAL)

            self.clear_failures(ip)

        return AuthResult(ok=True)

    def _keys_match(self, supplied_key: str) -> bool:
        """Equal-length-first, then constant-time byte comparison."""
        expected = self._expected_key()
        if not expected:
            return False

        supplied_bytes = supplied_key.encode("utf-8")
        expected_bytes = expected.encode("utf-8")

        if len(supplied_bytes) != len(expected_bytes):
            return False

        return hmac.compare_digest(supplied_bytes, expected_bytes)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def sweep(self) -> int:
        """Drop records that are unlocked and hold no recent attempts."""
        with self._lock:
            now = self._clock.time()
            idle = []
            for ip in list(self._records):
                record = self._read_record(ip, now)
                if record is not None and record.is_empty():
                    idle.append(ip)
            for ip in idle:
                del self._records[ip]

        if idle:
            logger.debug(f"[AUTH] Sweep removed {len(idle)} idle records")
        return len(idle)

    def locked_ips(self) -> List[str]:
        with self._lock:
            return [ip for ip in list(self._records) if self.is_locked_out(ip)]

    @property
    def tracked_count(self) -> int:
        with self._lock:
            return len(self._records)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            locked = self.locked_ips()
            return {
                "locked_ips": locked,
                "locked_count": len(locked),
                "tracked_records": len(self._records),
            }

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()


__all__ = [
    "AuthGuard",
    "AuthResult",
    "FailedAuthRecord",
    "LOCALHOST_ALIASES",
]
