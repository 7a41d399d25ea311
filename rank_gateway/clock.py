"""
============================================================================
Rank Gateway v1.0.0
Clock Abstraction - Injectable Time Source
============================================================================

Reliability Level: L5 High
Input Constraints: None
Side Effects: None (SystemClock reads the OS clock)

Every time-dependent service (lockouts, dedup windows, cooldowns, breaker
reset, session probe timing) reads time through a Clock instance so tests
can simulate elapsed time instead of sleeping.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import asyncio
import time
from datetime import datetime, timezone


class Clock:
    """
    Time source used by every service in the gateway.

    time() returns epoch seconds as float. sleep() is awaited by background
    loops so a simulated clock can advance instead of blocking.
    """

    def time(self) -> float:
        raise NotImplementedError

    def now(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""
        return datetime.fromtimestamp(self.time(), tz=timezone.utc)

    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock backed by time.time() and asyncio.sleep()."""

    def time(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock(Clock):
    """
    Simulated clock for deterministic tests.

    sleep() advances the clock by the requested amount and yields control
    once, so awaiting code observes the elapsed time without waiting.
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = float(start)

    def time(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards, got: {seconds}")
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._now += seconds
        await asyncio.sleep(0)


__all__ = ["Clock", "SystemClock", "ManualClock"]
