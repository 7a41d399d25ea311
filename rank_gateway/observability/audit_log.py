"""
============================================================================
Rank Gateway v1.0.0
Audit Log - Bounded, Queryable Operation History
============================================================================

Reliability Level: L5 High
Input Constraints: action and subject_id required for every entry
Side Effects: In-memory only (no persistence across restarts)

RETENTION
---------
Two independent limits, whichever is hit first evicts:
1. Count cap (default 100): inserting beyond cap drops the oldest entry
2. Age sweep (default 1 hour): periodic removal of old entries

Entries are immutable and stored newest first.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.scheduling import PeriodicTask

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_MAX_ENTRIES = 100
DEFAULT_MAX_AGE_SECONDS = 3600.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 600.0
DEFAULT_QUERY_LIMIT = 50


class AuditOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class AuditEntry:
    """
    Immutable record of one privileged operation outcome.

    Reliability Level: L5 High
    """
    id: str
    timestamp: datetime
    action: str
    subject_id: str
    outcome: AuditOutcome
    error: Optional[str] = None
    originator_ip: Optional[str] = None
    username: Optional[str] = None
    target_rank: Optional[Any] = None
    old_rank: Optional[Any] = None
    new_rank: Optional[Any] = None

    @property
    def success(self) -> bool:
        return self.outcome is AuditOutcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["outcome"] = self.outcome.value
        data["success"] = self.success
        return data


@dataclass(frozen=True)
class AuditPage:
    entries: List[AuditEntry]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True)
class AuditStats:
    total: int
    successful: int
    failed: int
    by_action: Dict[str, int] = field(default_factory=dict)


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditLog:
    """
    Append-only ring buffer of operation outcomes, newest first.

    Reliability Level: L5 High
    Thread Safety: Mutex lock on all buffer access
    Side Effects: Owns a PeriodicTask for the age sweep
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        clock: Optional[Clock] = None,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got: {max_entries}")

        self._max_entries = max_entries
        self._max_age_seconds = max_age_seconds
        self._clock = clock or SystemClock()
        # appendleft on a bounded deque evicts from the right (oldest)
        self._entries = deque(maxlen=max_entries)  # type: Deque[AuditEntry]
        self._lock = threading.Lock()
        self._sweeper = PeriodicTask("audit-log-sweep", sweep_interval_seconds, self.sweep)

        logger.info(
            f"[AUDIT] AuditLog initialized | max_entries={max_entries} | "
            f"max_age_seconds={max_age_seconds}"
        )

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(
        self,
        action: str,
        subject_id: Any,
        success: bool,
        error: Optional[str] = None,
        originator_ip: Optional[str] = None,
        username: Optional[str] = None,
        target_rank: Optional[Any] = None,
        old_rank: Optional[Any] = None,
        new_rank: Optional[Any] = None,
    ) -> AuditEntry:
        """
        Record an operation outcome.

        Assigns id and timestamp, prepends the entry and evicts the oldest
        entry when the cap is exceeded.

        Returns:
            The stored AuditEntry
        """
        entry = AuditEntry(
            id=uuid.uuid4().hex[:12],
            timestamp=self._clock.now(),
            action=action,
            subject_id=str(subject_id),
            outcome=AuditOutcome.SUCCESS if success else AuditOutcome.FAILURE,
            error=error,
            originator_ip=originator_ip,
            username=username,
            target_rank=target_rank,
            old_rank=old_rank,
            new_rank=new_rank,
        )

        with self._lock:
            self._entries.appendleft(entry)

        logger.debug(
            f"[AUDIT] Entry added | id={entry.id} | action={action} | "
            f"subject_id={entry.subject_id} | outcome={entry.outcome.value}"
        )
        return entry

    def query(
        self,
        action: Optional[str] = None,
        success: Optional[bool] = None,
        subject_id: Optional[Any] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> AuditPage:
        """
        Filter then paginate entries (newest first).

        Args:
            action: Only entries with this action
            success: Only successful (True) or failed (False) entries
            subject_id: Only entries for this subject
            limit: Page size (values < 1 fall back to the default)
            offset: Entries to skip after filtering
        """
        limit = limit if limit and limit > 0 else DEFAULT_QUERY_LIMIT
        offset = max(0, offset or 0)

        with self._lock:
            filtered = list(self._entries)

        if action:
            filtered = [e for e in filtered if e.action == action]
        if success is not None:
            filtered = [e for e in filtered if e.success == success]
        if subject_id is not None:
            filtered = [e for e in filtered if e.subject_id == str(subject_id)]

        return AuditPage(
            entries=filtered[offset:offset + limit],
            total=len(filtered),
            limit=limit,
            offset=offset,
        )

    def stats(self) -> AuditStats:
        with self._lock:
            entries = list(self._entries)

        by_action = {}  # type: Dict[str, int]
        successful = 0
        for entry in entries:
            by_action[entry.action] = by_action.get(entry.action, 0) + 1
            if entry.success:
                successful += 1

        return AuditStats(
            total=len(entries),
            successful=successful,
            failed=len(entries) - successful,
            by_action=by_action,
        )

    def get_by_id(self, entry_id: str) -> Optional[AuditEntry]:
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
        return None

    def get_recent(self, count: int = 10) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)[:max(0, count)]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("[AUDIT] Audit log cleared")

    def sweep(self) -> int:
        """
        Remove entries older than max_age_seconds.

        Returns:
            Number of entries removed
        """
        cutoff = self._clock.now() - timedelta(seconds=self._max_age_seconds)

        with self._lock:
            before = len(self._entries)
            kept = [e for e in self._entries if e.timestamp > cutoff]
            self._entries = deque(kept, maxlen=self._max_entries)
            removed = before - len(kept)

        if removed > 0:
            logger.info(f"[AUDIT] Cleaned up {removed} old log entries")
        return removed

    def start(self) -> None:
        self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()


__all__ = [
    "AuditLog",
    "AuditEntry",
    "AuditOutcome",
    "AuditPage",
    "AuditStats",
]
