"""
Session Monitor - Upstream Session Health with Hysteresis

Reliability Level: L6 Critical
Input Constraints: Async probe returning the authenticated principal
Side Effects: Periodic probe calls, listener callbacks, webhook alerts

Health transitions:
- Fail slow: healthy flips false only once consecutive probe failures
  reach failure_threshold (default 3). One alert per episode.
- Recover fast: the first matching success after an unhealthy period flips
  back to healthy and emits exactly one "recovered" notification.
- Identity mismatch bypasses hysteresis: unhealthy immediately, reason
  "identity mismatch", alert on entering the mismatch state.

Listener statuses: "healthy" | "unhealthy" | "recovered"

Error Codes:
- SESS-001: Session probe failed or timed out
- SESS-002: Session identity mismatch

Python 3.8 Compatible - No union type hints (X | None)
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
import asyncio
import inspect
import logging

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.errors import ErrorCode, SessionError
from rank_gateway.observability import metrics
from rank_gateway.observability.webhook_notifier import WebhookNotifier
from rank_gateway.scheduling import PeriodicTask

# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_CHECK_INTERVAL_SECONDS = 300.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0

IDENTITY_MISMATCH_REASON = "identity mismatch"

Probe = Callable[[], Awaitable[str]]
StatusListener = Callable[[str, Dict[str, Any]], Any]


class SessionStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    RECOVERED = "recovered"


@dataclass(frozen=True)
class HealthCheckResult:
    healthy: bool
    timestamp: datetime
    error: Optional[str] = None


@dataclass(frozen=True)
class SessionHealth:
    """Read-only snapshot returned by get_health()."""
    healthy: bool
    last_check_at: Optional[datetime]
    consecutive_failures: int
    listener_count: int
    last_error: Optional[str]
    expected_principal: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "last_check_at": self.last_check_at.isoformat() if self.last_check_at else None,
            "consecutive_failures": self.consecutive_failures,
            "listener_count": self.listener_count,
            "last_error": self.last_error,
            "expected_principal": self.expected_principal,
        }


# =============================================================================
# SESSION MONITOR
# =============================================================================

class SessionMonitor:
    """
    Periodic upstream session probe with asymmetric health thresholds.

    Reliability Level: L6 Critical
    Side Effects: Owns a PeriodicTask while started

    USAGE:
        monitor = SessionMonitor(probe=client.fetch_authenticated_user)
        unsubscribe = monitor.on_status_change(handle_status)
        monitor.start(interval_seconds=300)
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        probe: Probe,
        expected_principal: Optional[str] = None,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        notifier: Optional[WebhookNotifier] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError(f"failure_threshold must be positive, got: {failure_threshold}")

        self._probe = probe
        self._expected_principal = expected_principal
        self._failure_threshold = failure_threshold
        self._probe_timeout_seconds = probe_timeout_seconds
        self._notifier = notifier
        self._clock = clock or SystemClock()

        self._healthy = True
        self._announced = False
        self._identity_mismatch = False
        self._consecutive_failures = 0
        self._last_check_at = None  # type: Optional[datetime]
        self._last_error = None  # type: Optional[str]
        self._listeners = []  # type: List[StatusListener]
        self._task = None  # type: Optional[PeriodicTask]
        self._check_lock = None  # type: Optional[asyncio.Lock]

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on_status_change(self, callback: StatusListener) -> Callable[[], None]:
        """
        Register a status listener.

        Returns:
            Zero-argument function removing the listener (idempotent)
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _notify(self, status: SessionStatus, data: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(status.value, data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"[SESSION] Status listener failed | status={status.value} | error={str(e)}"
                )

    def _event_data(self, timestamp: datetime, reason: Optional[str] = None) -> Dict[str, Any]:
        return {
            "timestamp": timestamp.isoformat(),
            "consecutive_failures": self._consecutive_failures,
            "reason": reason,
            "principal": self._expected_principal,
        }

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    async def force_check(self) -> HealthCheckResult:
        """Run one probe now, updating the shared health state."""
        if self._check_lock is None:
            self._check_lock = asyncio.Lock()

        async with self._check_lock:
            return await self._check()

    async def _check(self) -> HealthCheckResult:
        error = None  # type: Optional[SessionError]
        principal = None  # type: Optional[str]

        try:
            principal = await asyncio.wait_for(self._probe(), timeout=self._probe_timeout_seconds)
        except asyncio.TimeoutError:
            error = SessionError(f"Probe timed out after {self._probe_timeout_seconds}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = SessionError(f"Probe failed: {str(e)}")

        timestamp = self._clock.now()
        self._last_check_at = timestamp

        if error is not None:
            await self._on_failure(error, timestamp)
        else:
            if self._expected_principal is None:
                self._expected_principal = principal
                logger.info(f"[SESSION] Recorded expected principal | principal={principal}")

            if principal != self._expected_principal:
                await self._on_identity_mismatch(principal, timestamp)
            else:
                await self._on_success(timestamp)

        metrics.update_session_health(self._healthy)
        return HealthCheckResult(
            healthy=self._healthy,
            timestamp=timestamp,
            error=self._last_error,
        )

    async def _on_success(self, timestamp: datetime) -> None:
        self._consecutive_failures = 0
        self._last_error = None
        self._identity_mismatch = False

        if not self._healthy:
            self._healthy = True
            self._announced = True
            logger.info(f"[SESSION] Session recovered | principal={self._expected_principal}")
            await self._notify(SessionStatus.RECOVERED, self._event_data(timestamp))
            if self._notifier is not None:
                self._notifier.notify_session_recovered(self._expected_principal)
        elif not self._announced:
            self._announced = True
            logger.info(f"[SESSION] Session healthy | principal={self._expected_principal}")
            await self._notify(SessionStatus.HEALTHY, self._event_data(timestamp))

    async def _on_failure(self, error: SessionError, timestamp: datetime) -> None:
        self._consecutive_failures += 1
        self._last_error = error.message

        logger.warning(
            f"[{error.error_code}] {error.message} | "
            f"consecutive_failures={self._consecutive_failures} | "
            f"threshold={self._failure_threshold}"
        )

        if self._healthy and self._consecutive_failures >= self._failure_threshold:
            self._healthy = False
            logger.error(
                f"[{error.error_code}] Session marked unhealthy | "
                f"consecutive_failures={self._consecutive_failures}"
            )
            await self._notify(SessionStatus.UNHEALTHY, self._event_data(timestamp, error.message))
            if self._notifier is not None:
                self._notifier.notify_session_alert(
                    error.message, self._consecutive_failures, self._expected_principal,
                )

    async def _on_identity_mismatch(self, principal: Optional[str], timestamp: datetime) -> None:
        self._consecutive_failures += 1
        self._last_error = IDENTITY_MISMATCH_REASON
        self._healthy = False

        if self._identity_mismatch:
            return
        self._identity_mismatch = True

        logger.critical(
            f"[{ErrorCode.IDENTITY_MISMATCH}] Session identity mismatch | "
            f"expected={self._expected_principal} | actual={principal}"
        )
        data = self._event_data(timestamp, IDENTITY_MISMATCH_REASON)
        data["actual_principal"] = principal
        await self._notify(SessionStatus.UNHEALTHY, data)
        if self._notifier is not None:
            self._notifier.notify_session_alert(
                IDENTITY_MISMATCH_REASON, self._consecutive_failures, self._expected_principal,
            )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS) -> None:
        """Begin probing every interval_seconds, first probe immediately."""
        if self._task is not None and self._task.is_running:
            logger.warning("[SESSION] Monitor already running, ignoring start")
            return

        self._task = PeriodicTask(
            "session-monitor",
            interval_seconds,
            self.force_check,
            run_immediately=True,
        )
        self._task.start()

    async def stop(self) -> None:
        if self._task is not None:
            await self._task.stop()
            self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and self._task.is_running

    def get_health(self) -> SessionHealth:
        return SessionHealth(
            healthy=self._healthy,
            last_check_at=self._last_check_at,
            consecutive_failures=self._consecutive_failures,
            listener_count=len(self._listeners),
            last_error=self._last_error,
            expected_principal=self._expected_principal,
        )


__all__ = [
    "HealthCheckResult",
    "IDENTITY_MISMATCH_REASON",
    "SessionHealth",
    "SessionMonitor",
    "SessionStatus",
]
