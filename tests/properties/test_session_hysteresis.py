"""
Property-Based Tests for Session Health Hysteresis

Reliability Level: L6 Critical
Python 3.8 Compatible

Tests the SessionMonitor using Hypothesis.
Minimum 100 iterations per property.
"""

import asyncio
from typing import Any, Dict, List

from hypothesis import given, settings
from hypothesis import strategies as st

from rank_gateway.clock import ManualClock
from rank_gateway.transport.session_monitor import SessionMonitor


PRINCIPAL = "rank-bot"


# =============================================================================
# HELPERS
# =============================================================================

def run_script(outcomes: List[bool], failure_threshold: int = 3) -> List[str]:
    """
    Drive a monitor through a probe script and return emitted statuses.

    True means the probe succeeds, False means it raises.
    """
    script = list(outcomes)
    statuses = []  # type: List[str]

    async def probe() -> str:
        if script.pop(0):
            return PRINCIPAL
        raise RuntimeError("401 Unauthorized")

    def listener(status: str, data: Dict[str, Any]) -> None:
        statuses.append(status)

    async def drive() -> None:
        monitor = SessionMonitor(
            probe=probe,
            expected_principal=PRINCIPAL,
            failure_threshold=failure_threshold,
            clock=ManualClock(),
        )
        monitor.on_status_change(listener)
        for _ in range(len(outcomes)):
            await monitor.force_check()

    asyncio.run(drive())
    return statuses


# =============================================================================
# PROPERTY: Fail Slow, Recover Fast
# =============================================================================

class TestHysteresis:

    @settings(max_examples=100)
    @given(failures=st.integers(min_value=0, max_value=2))
    def test_failures_below_threshold_never_flip(self, failures: int) -> None:
        """
        Verify that fewer than three consecutive failures between successes
        never produce an unhealthy transition.
        """
        outcomes = [True] + [False] * failures + [True]
        assert run_script(outcomes) == ["healthy"]

    @settings(max_examples=100)
    @given(
        failures=st.integers(min_value=3, max_value=20),
        successes=st.integers(min_value=1, max_value=5),
    )
    def test_outage_emits_one_unhealthy_and_one_recovered(
        self, failures: int, successes: int
    ) -> None:
        """
        Verify that an outage of any length at or above the threshold emits
        exactly one unhealthy and one recovered event.
        """
        outcomes = [True] + [False] * failures + [True] * successes
        assert run_script(outcomes) == ["healthy", "unhealthy", "recovered"]

    @settings(max_examples=100)
    @given(outcomes=st.lists(st.booleans(), min_size=1, max_size=30))
    def test_transitions_alternate(self, outcomes: List[bool]) -> None:
        """
        Verify that unhealthy and recovered events strictly alternate after
        the single initial healthy event.
        """
        statuses = run_script(outcomes)

        assert statuses.count("healthy") <= 1
        transitions = [s for s in statuses if s != "healthy"]
        for index, status in enumerate(transitions):
            assert status == ("unhealthy" if index % 2 == 0 else "recovered")
