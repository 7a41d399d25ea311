"""
============================================================================
Rank Gateway v1.0.0
Cooldown Tracker - Per-Subject Minimum Interval Between Rank Changes
============================================================================

Reliability Level: L5 High
Input Constraints: subject_id required
Side Effects: In-memory entry map, periodic sweep

Callers record a change ONLY after a mutating operation succeeds; a failed
or rejected operation never starts the cooldown clock. A duration of 0
disables the feature entirely.

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


DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class CooldownEntry:
    subject_id: str
    last_change_at: float


@dataclass(frozen=True)
class CooldownStatus:
    active: bool
    remaining_seconds: int = 0


class CooldownTracker:
    """
    Enforces a minimum interval between successful rank changes per subject.

    Reliability Level: L5 High
    Thread Safety: Mutex lock on entry map
    """

    def __init__(
        self,
        duration_seconds: float = 0,
        clock: Optional[Clock] = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if duration_seconds < 0:
            raise ValueError(f"duration_seconds must be non-negative, got: {duration_seconds}")

        self._duration_seconds = duration_seconds
        self._clock = clock or SystemClock()
        self._entries = {}  # type: Dict[str, CooldownEntry]
        self._lock = threading.Lock()
        self._sweeper = PeriodicTask("cooldown-sweep", sweep_interval_seconds, self.sweep)

    @property
    def enabled(self) -> bool:
        return self._duration_seconds > 0

    @property
    def duration_seconds(self) -> float:
        return self._duration_seconds

    @property
    def active_count(self) -> int:
        """Subjects currently inside their cooldown window."""
        with self._lock:
            now = self._clock.time()
            return sum(
                1 for e in self._entries.values()
                if (now - e.last_change_at) < self._duration_seconds
            )

    def check_cooldown(self, subject_id: Any) -> CooldownStatus:
        if not self.enabled:
            return CooldownStatus(active=False)

        with self._lock:
            entry = self._entries.get(str(subject_id))
            if entry is None:
                return CooldownStatus(active=False)

            elapsed = self._clock.time() - entry.last_change_at

        if elapsed < self._duration_seconds:
            remaining = math.ceil(self._duration_seconds - elapsed)
            return CooldownStatus(active=True, remaining_seconds=max(1, remaining))

        return CooldownStatus(active=False)

    def record_change(self, subject_id: Any) -> None:
        if not self.enabled:
            return

        key = str(subject_id)
        with self._lock:
            self._entries[key] = CooldownEntry(
                subject_id=key,
                last_change_at=self._clock.time(),
            )

        logger.debug(f"[COOLDOWN] Change recorded | subject_id={key}")

    def sweep(self) -> int:
        """Remove entries whose cooldown has elapsed. Returns removed count."""
        with self._lock:
            now = self._clock.time()
            expired = [
                k for k, e in self._entries.items()
                if (now - e.last_change_at) >= self._duration_seconds
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def start(self) -> None:
        if self.enabled:
            self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()


__all__ = ["CooldownTracker", "CooldownEntry", "CooldownStatus"]
