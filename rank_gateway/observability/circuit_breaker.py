"""
============================================================================
Rank Gateway v1.0.0
Circuit Breaker - Webhook Sink Protection
============================================================================

Reliability Level: L5 High
Input Constraints: threshold > 0, reset_seconds > 0
Side Effects: Updates the breaker Prometheus gauge

STATE MACHINE
-------------
CLOSED --(threshold consecutive failures)--> OPEN
OPEN   --(reopen_at passes)----------------> CLOSED (failures reset to 0)

There is no half-open probing: once reopen_at has passed the next delivery
is attempted normally. Any success resets consecutive_failures to 0 in
either state.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.observability import metrics

# Configure module logger
logger = logging.getLogger(__name__)


DEFAULT_BREAKER_THRESHOLD = 5
DEFAULT_BREAKER_RESET_SECONDS = 60.0


@dataclass(frozen=True)
class CircuitBreakerState:
    """Read-only snapshot of the breaker."""
    is_open: bool
    consecutive_failures: int
    reopen_at: Optional[float]


class CircuitBreaker:
    """
    Consecutive-failure breaker with timed automatic reset.

    Reliability Level: L5 High
    Thread Safety: Mutex lock on all state transitions
    """

    def __init__(
        self,
        threshold: int = DEFAULT_BREAKER_THRESHOLD,
        reset_seconds: float = DEFAULT_BREAKER_RESET_SECONDS,
        clock: Optional[Clock] = None,
    ) -> None:
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got: {threshold}")
        if reset_seconds <= 0:
            raise ValueError(f"reset_seconds must be positive, got: {reset_seconds}")

        self._threshold = threshold
        self._reset_seconds = reset_seconds
        self._clock = clock or SystemClock()
        self._is_open = False
        self._consecutive_failures = 0
        self._reopen_at = None  # type: Optional[float]
        self._lock = threading.Lock()

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def reset_seconds(self) -> float:
        return self._reset_seconds

    def _maybe_reset(self) -> None:
        """Close the breaker once reopen_at has passed (lock held)."""
        if self._is_open and self._reopen_at is not None and self._clock.time() >= self._reopen_at:
            self._is_open = False
            self._consecutive_failures = 0
            self._reopen_at = None
            metrics.update_breaker_state(False)
            logger.info("[WEBHOOK-BREAKER] Reset duration elapsed, breaker CLOSED")

    def is_open(self) -> bool:
        with self._lock:
            self._maybe_reset()
            return self._is_open

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0

    def record_failure(self) -> bool:
        """
        Count a failed delivery.

        Returns:
            True if this failure opened the breaker
        """
        with self._lock:
            self._maybe_reset()
            self._consecutive_failures += 1

            if not self._is_open and self._consecutive_failures >= self._threshold:
                self._is_open = True
                self._reopen_at = self._clock.time() + self._reset_seconds
                metrics.update_breaker_state(True)
                logger.warning(
                    f"[WEBHOOK-BREAKER] Breaker OPEN | "
                    f"consecutive_failures={self._consecutive_failures} | "
                    f"reset_in={self._reset_seconds}s"
                )
                return True

            return False

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            self._maybe_reset()
            return CircuitBreakerState(
                is_open=self._is_open,
                consecutive_failures=self._consecutive_failures,
                reopen_at=self._reopen_at,
            )


__all__ = ["CircuitBreaker", "CircuitBreakerState"]
