"""
Unit Tests for Request Shaping

Reliability Level: L6 Critical
Python 3.8 Compatible

Tests the logic layer guards:
- Deduplicator: window, original request id, key folding, sweep
- CooldownTracker: disabled mode, remaining seconds, sweep
- RequestRateLimiter: fixed window budget and reset
"""

import threading
from typing import List

import pytest

from rank_gateway.clock import ManualClock
from rank_gateway.logic.cooldown import CooldownTracker
from rank_gateway.logic.deduplicator import Deduplicator, build_dedup_key
from rank_gateway.logic.rate_limiter import RequestRateLimiter


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# =============================================================================
# Deduplicator
# =============================================================================

class TestDeduplicator:

    def test_first_observation_is_not_duplicate(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        result = dedup.check_and_record("promote:42:default", "req-1")
        assert result.duplicate is False
        assert dedup.pending_count == 1

    def test_second_call_inside_window_carries_original_id(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        dedup.check_and_record("promote:42:default", "req-1")
        clock.advance(3)

        result = dedup.check_and_record("promote:42:default", "req-2")

        assert result.duplicate is True
        assert result.original_request_id == "req-1"
        assert result.retry_after_seconds == 2

    def test_key_is_accepted_again_after_window(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        dedup.check_and_record("promote:42:default", "req-1")
        clock.advance(5)

        result = dedup.check_and_record("promote:42:default", "req-2")
        assert result.duplicate is False

        # The new observation replaced the stale one
        clock.advance(1)
        assert dedup.check_and_record("promote:42:default", "req-3").original_request_id == "req-2"

    def test_stale_entry_is_absent_before_sweep(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        dedup.check_and_record("k", "req-1")
        clock.advance(10)

        assert dedup.pending_count == 1
        assert dedup.check_and_record("k", "req-2").duplicate is False

    def test_sweep_removes_stale_entries(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        dedup.check_and_record("a", "req-1")
        clock.advance(4)
        dedup.check_and_record("b", "req-2")
        clock.advance(2)

        assert dedup.sweep() == 1
        assert dedup.pending_count == 1

    def test_different_keys_are_independent(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        dedup.check_and_record("promote:1:default", "req-1")
        assert dedup.check_and_record("promote:2:default", "req-2").duplicate is False

    def test_concurrent_callers_admit_exactly_one(self, clock: ManualClock) -> None:
        dedup = Deduplicator(window_seconds=5, clock=clock)
        callers = 16
        barrier = threading.Barrier(callers)
        results = []  # type: List[bool]
        results_lock = threading.Lock()

        def call(n: int) -> None:
            barrier.wait()
            result = dedup.check_and_record("promote:42:default", f"req-{n}")
            with results_lock:
                results.append(result.duplicate)

        threads = [threading.Thread(target=call, args=(n,)) for n in range(callers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(results) == callers
        assert results.count(False) == 1
        assert dedup.pending_count == 1

    def test_invalid_window_rejected(self) -> None:
        with pytest.raises(ValueError):
            Deduplicator(window_seconds=0)


class TestBuildDedupKey:

    def test_rank_number_is_used(self) -> None:
        assert build_dedup_key("setRank", 42, rank=10) == "setRank:42:10"

    def test_rank_name_used_when_rank_missing(self) -> None:
        assert build_dedup_key("setRank", 42, rank_name="Admin") == "setRank:42:Admin"

    def test_falls_back_to_default(self) -> None:
        assert build_dedup_key("promote", 42) == "promote:42:default"

    def test_zero_rank_folds_into_rank_name(self) -> None:
        assert build_dedup_key("setRank", 42, rank=0, rank_name="Guest") == "setRank:42:Guest"
        assert build_dedup_key("setRank", 42, rank=0) == "setRank:42:default"


# =============================================================================
# CooldownTracker
# =============================================================================

class TestCooldownTracker:

    def test_zero_duration_disables_feature(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=0, clock=clock)
        tracker.record_change(42)

        assert tracker.enabled is False
        assert tracker.check_cooldown(42).active is False
        assert tracker.active_count == 0

    def test_active_inside_duration(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=60, clock=clock)
        tracker.record_change(42)
        clock.advance(20.5)

        status = tracker.check_cooldown(42)
        assert status.active is True
        assert status.remaining_seconds == 40

    def test_inactive_at_duration(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=60, clock=clock)
        tracker.record_change(42)
        clock.advance(60)

        assert tracker.check_cooldown(42).active is False

    def test_unknown_subject_is_inactive(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=60, clock=clock)
        assert tracker.check_cooldown("never-changed").active is False

    def test_subject_ids_compare_as_strings(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=60, clock=clock)
        tracker.record_change(42)
        assert tracker.check_cooldown("42").active is True

    def test_record_change_restarts_clock(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=60, clock=clock)
        tracker.record_change(42)
        clock.advance(50)
        tracker.record_change(42)
        clock.advance(50)

        assert tracker.check_cooldown(42).active is True

    def test_sweep_removes_elapsed_entries(self, clock: ManualClock) -> None:
        tracker = CooldownTracker(duration_seconds=60, clock=clock)
        tracker.record_change(1)
        clock.advance(30)
        tracker.record_change(2)
        clock.advance(31)

        assert tracker.sweep() == 1
        assert tracker.active_count == 1

    def test_negative_duration_rejected(self) -> None:
        with pytest.raises(ValueError):
            CooldownTracker(duration_seconds=-1)


# =============================================================================
# RequestRateLimiter
# =============================================================================

class TestRequestRateLimiter:

    def test_requests_within_budget_are_allowed(self, clock: ManualClock) -> None:
        limiter = RequestRateLimiter(window_seconds=60, max_requests=3, clock=clock)

        statuses = [limiter.hit("1.2.3.4") for _ in range(3)]

        assert all(s.allowed for s in statuses)
        assert [s.remaining for s in statuses] == [2, 1, 0]

    def test_request_over_budget_is_rejected(self, clock: ManualClock) -> None:
        limiter = RequestRateLimiter(window_seconds=60, max_requests=2, clock=clock)
        limiter.hit("1.2.3.4")
        limiter.hit("1.2.3.4")
        clock.advance(15)

        status = limiter.hit("1.2.3.4")
        assert status.allowed is False
        assert status.retry_after_seconds == 45

    def test_window_resets_after_elapsing(self, clock: ManualClock) -> None:
        limiter = RequestRateLimiter(window_seconds=60, max_requests=1, clock=clock)
        limiter.hit("1.2.3.4")
        assert not limiter.hit("1.2.3.4").allowed

        clock.advance(60)
        assert limiter.hit("1.2.3.4").allowed

    def test_budget_is_per_ip(self, clock: ManualClock) -> None:
        limiter = RequestRateLimiter(window_seconds=60, max_requests=1, clock=clock)
        limiter.hit("1.2.3.4")
        assert limiter.hit("5.6.7.8").allowed

    def test_reset_forgets_windows(self, clock: ManualClock) -> None:
        limiter = RequestRateLimiter(window_seconds=60, max_requests=1, clock=clock)
        limiter.hit("1.2.3.4")
        limiter.reset("1.2.3.4")
        assert limiter.hit("1.2.3.4").allowed

    def test_sweep_removes_expired_windows(self, clock: ManualClock) -> None:
        limiter = RequestRateLimiter(window_seconds=60, max_requests=5, clock=clock)
        limiter.hit("1.2.3.4")
        clock.advance(61)
        assert limiter.sweep() == 1
