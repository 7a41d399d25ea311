"""
Property-Based Tests for Request Windows

Reliability Level: L6 Critical
Python 3.8 Compatible

Tests the Deduplicator, CooldownTracker and AuditLog bounds using Hypothesis.
Minimum 100 iterations per property.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from rank_gateway.clock import ManualClock
from rank_gateway.logic.cooldown import CooldownTracker
from rank_gateway.logic.deduplicator import Deduplicator
from rank_gateway.observability.audit_log import AuditLog


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

window_strategy = st.integers(min_value=1, max_value=600)

offset_fraction_strategy = st.floats(
    min_value=0.0, max_value=0.999, allow_nan=False, allow_infinity=False
)

key_strategy = st.text(
    min_size=1,
    max_size=40,
    alphabet=st.characters(whitelist_categories=("L", "N")),
)


# =============================================================================
# PROPERTY: Deduplication Window
# =============================================================================

class TestDeduplicationWindow:

    @settings(max_examples=100)
    @given(window=window_strategy, fraction=offset_fraction_strategy, key=key_strategy)
    def test_repeat_inside_window_is_duplicate(
        self, window: int, fraction: float, key: str
    ) -> None:
        """
        Verify that a repeat strictly inside the window is flagged with the
        first request's id and a positive retry hint.
        """
        clock = ManualClock()
        dedup = Deduplicator(window_seconds=window, clock=clock)

        dedup.check_and_record(key, "first")
        clock.advance(window * fraction)
        result = dedup.check_and_record(key, "second")

        assert result.duplicate is True
        assert result.original_request_id == "first"
        assert 1 <= result.retry_after_seconds <= window

    @settings(max_examples=100)
    @given(
        window=window_strategy,
        extra=st.floats(min_value=0, max_value=3_600, allow_nan=False),
        key=key_strategy,
    )
    def test_repeat_after_window_is_accepted(self, window: int, extra: float, key: str) -> None:
        clock = ManualClock()
        dedup = Deduplicator(window_seconds=window, clock=clock)

        dedup.check_and_record(key, "first")
        clock.advance(window + extra)

        assert dedup.check_and_record(key, "second").duplicate is False


# =============================================================================
# PROPERTY: Cooldown Window
# =============================================================================

class TestCooldownWindow:

    @settings(max_examples=100)
    @given(duration=window_strategy, fraction=offset_fraction_strategy)
    def test_remaining_is_ceiling_of_time_left(self, duration: int, fraction: float) -> None:
        """
        Verify that the cooldown stays active for its whole duration and
        never reports more than the configured duration.
        """
        clock = ManualClock()
        tracker = CooldownTracker(duration_seconds=duration, clock=clock)

        tracker.record_change("42")
        clock.advance(duration * fraction)
        status = tracker.check_cooldown("42")

        assert status.active is True
        assert 1 <= status.remaining_seconds <= duration

    @settings(max_examples=100)
    @given(subject=key_strategy, elapsed=st.floats(min_value=0, max_value=10_000))
    def test_zero_duration_never_blocks(self, subject: str, elapsed: float) -> None:
        clock = ManualClock()
        tracker = CooldownTracker(duration_seconds=0, clock=clock)

        tracker.record_change(subject)
        clock.advance(elapsed)

        assert tracker.check_cooldown(subject).active is False


# =============================================================================
# PROPERTY: Audit Log Bound
# =============================================================================

class TestAuditLogBound:

    @settings(max_examples=100)
    @given(
        max_entries=st.integers(min_value=1, max_value=50),
        overflow=st.integers(min_value=1, max_value=50),
    )
    def test_size_never_exceeds_cap(self, max_entries: int, overflow: int) -> None:
        """
        Verify that after cap + k additions only the newest cap entries
        remain, newest first.
        """
        log = AuditLog(max_entries=max_entries, clock=ManualClock())

        added = [
            log.add(action="setRank", subject_id=i, success=True)
            for i in range(max_entries + overflow)
        ]

        assert len(log) == max_entries
        kept = [e.id for e in log.get_recent(max_entries)]
        assert kept == [e.id for e in reversed(added[-max_entries:])]
