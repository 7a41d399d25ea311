# ============================================================================
# Rank Gateway v1.0.0
# Request Rate Limiter - Per-IP Fixed Window
# ============================================================================
#
# Reliability Level: L5 High
# Purpose: Bounds how many API requests one IP may issue per window
#
# MANDATE:
#   - Thread-safe with mutex lock
#   - Expired windows logically absent before sweep
#   - Rejections carry retry_after for the 429 body
#
# Defaults:
#   - Window: 15 minutes
#   - Max: 30 requests per window
#
# Error Codes:
#   - RATE-001: Rate limit exceeded
#
# ============================================================================

import logging
import math
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.errors import ErrorCode
from rank_gateway.scheduling import PeriodicTask

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    started_at: float
    count: int


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int = 0


class RequestRateLimiter:
    """
    Thread-Safe Fixed Window Rate Limiter.

    Each IP gets max_requests per window_seconds. The window starts on the
    first request and resets once it has fully elapsed.

    Reliability Level: L5 High
    Thread Safety: Mutex lock on hit() and sweep()

    Example Usage:
        limiter = RequestRateLimiter(window_seconds=900, max_requests=30)

        status = limiter.hit("203.0.113.7")
        if not status.allowed:
            raise RateLimitError(status.retry_after_seconds)
    """

    DEFAULT_WINDOW_SECONDS = 15 * 60
    DEFAULT_MAX_REQUESTS = 30
    SWEEP_INTERVAL_SECONDS = 60.0

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Optional[Clock] = None,
    ):
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got: {window_seconds}")
        if max_requests <= 0:
            raise ValueError(f"max_requests must be positive, got: {max_requests}")

        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock or SystemClock()
        self._windows = {}  # type: Dict[str, RateWindow]

        # Thread safety - MUTEX LOCK
        self._lock = threading.Lock()
        self._sweeper = PeriodicTask("rate-limit-sweep", self.SWEEP_INTERVAL_SECONDS, self.sweep)

        logger.info(
            f"[RATE] RequestRateLimiter initialized | "
            f"window={window_seconds}s | max_requests={max_requests}"
        )

    def hit(self, ip: str) -> RateLimitStatus:
        """
        Count one request for ip (thread-safe).

        Returns:
            RateLimitStatus; allowed=False once the window budget is spent
        """
        with self._lock:
            now = self._clock.time()
            window = self._windows.get(ip)

            if window is None or (now - window.started_at) >= self.window_seconds:
                window = RateWindow(started_at=now, count=0)
                self._windows[ip] = window

            if window.count >= self.max_requests:
                retry_after = math.ceil(self.window_seconds - (now - window.started_at))
                logger.warning(
                    f"[{ErrorCode.RATE_LIMITED}] Rate limit exceeded | "
                    f"ip={ip} | limit={self.max_requests} | retry_after={retry_after}s"
                )
                return RateLimitStatus(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    retry_after_seconds=max(1, retry_after),
                )

            window.count += 1
            return RateLimitStatus(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - window.count,
            )

    def sweep(self) -> int:
        with self._lock:
            now = self._clock.time()
            expired = [
                ip for ip, w in self._windows.items()
                if (now - w.started_at) >= self.window_seconds
            ]
            for ip in expired:
                del self._windows[ip]
        return len(expired)

    def reset(self, ip: Optional[str] = None) -> None:
        """Forget one IP's window, or every window when ip is None."""
        with self._lock:
            if ip is None:
                self._windows.clear()
            else:
                self._windows.pop(ip, None)

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()


# ============================================================================
# Reliability Audit
# ============================================================================
#
# [Reliability Audit]
# Thread Safety: [Verified - Mutex lock on all window mutations]
# Window Expiry: [Verified - stale windows replaced on next hit]
# Error Handling: [RATE-001 logged on limit breach]
#
# ============================================================================
