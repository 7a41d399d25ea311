"""
============================================================================
Rank Gateway v1.0.0
Request Deduplicator - Short-Window Replay Suppression
============================================================================

Reliability Level: L6 Critical
Input Constraints: key and request_id required
Side Effects: In-memory entry map, periodic sweep

The check-then-insert in check_and_record() is a single critical section,
so two near-simultaneous requests for the same key cannot both pass.
Entries older than the window are treated as absent even before the sweep
removes them.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.scheduling import PeriodicTask

# Configure module logger
logger = logging.getLogger(__name__)


DEFAULT_DEDUP_WINDOW_SECONDS = 5.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 30.0


@dataclass
class DedupEntry:
    key: str
    seen_at: float
    original_request_id: Optional[str]


@dataclass(frozen=True)
class DedupResult:
    duplicate: bool
    original_request_id: Optional[str] = None
    retry_after_seconds: Optional[int] = None


def build_dedup_key(
    action: str,
    subject: Any,
    rank: Optional[Any] = None,
    rank_name: Optional[str] = None,
) -> str:
    """
    Build the dedup key for a rank operation.

    Falsy rank values (None, 0, "") fall through to rank_name and then to
    "default", so requests without a target rank share one bucket per
    action and subject.
    """
    target = rank or rank_name or "default"
    return f"{action}:{subject}:{target}"


class Deduplicator:
    """
    Suppresses identical requests seen within the dedup window.

    Reliability Level: L6 Critical
    Thread Safety: Mutex lock around check-then-insert
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS,
        clock: Optional[Clock] = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got: {window_seconds}")

        self._window_seconds = window_seconds
        self._clock = clock or SystemClock()
        self._entries = {}  # type: Dict[str, DedupEntry]
        self._lock = threading.Lock()
        self._sweeper = PeriodicTask("dedup-sweep", sweep_interval_seconds, self.sweep)

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def pending_count(self) -> int:
        """Number of stored entries (fresh or awaiting sweep)."""
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, entry: DedupEntry, now: float) -> bool:
        return (now - entry.seen_at) < self._window_seconds

    def check_and_record(self, key: str, request_id: Optional[str]) -> DedupResult:
        """
        Atomically detect a duplicate or record a first observation.

        Returns:
            DedupResult(duplicate=True, original_request_id=...) if an
            unexpired entry exists, else DedupResult(duplicate=False)
        """
        with self._lock:
            now = self._clock.time()
            existing = self._entries.get(key)

            if existing is not None and self._is_fresh(existing, now):
                remaining = self._window_seconds - (now - existing.seen_at)
                logger.info(
                    f"[DEDUP] Duplicate request detected | key={key} | "
                    f"original_request_id={existing.original_request_id}"
                )
                return DedupResult(
                    duplicate=True,
                    original_request_id=existing.original_request_id,
                    retry_after_seconds=max(1, math.ceil(remaining)),
                )

            self._entries[key] = DedupEntry(
                key=key,
                seen_at=now,
                original_request_id=request_id,
            )

        return DedupResult(duplicate=False)

    def sweep(self) -> int:
        """Remove entries older than the window. Returns removed count."""
        with self._lock:
            now = self._clock.time()
            stale = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for key in stale:
                del self._entries[key]

        if stale:
            logger.debug(f"[DEDUP] Sweep removed {len(stale)} stale entries")
        return len(stale)

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()


__all__ = ["Deduplicator", "DedupEntry", "DedupResult", "build_dedup_key"]
