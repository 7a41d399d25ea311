"""
============================================================================
Rank Gateway v1.0.0
Periodic Task Scheduler - Background Sweeps and Timers
============================================================================

Reliability Level: L5 High
Input Constraints: interval_seconds must be positive
Side Effects: Starts/cancels asyncio background tasks

Each service owns its own PeriodicTask (GC sweeps, breaker tick, session
probe) and starts/stops it explicitly. A failing callback is logged and the
loop continues; it never propagates into the request path.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

# Configure module logger
logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs a callback every interval_seconds on the running event loop.

    Reliability Level: L5 High
    Input Constraints: callback may be sync or return an awaitable
    Side Effects: Creates one asyncio.Task while running

    The first invocation happens after one full interval unless
    run_immediately is set.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Any],
        run_immediately: bool = False,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got: {interval_seconds}"
            )

        self._name = name
        self._interval_seconds = interval_seconds
        self._callback = callback
        self._run_immediately = run_immediately
        self._sleep = sleep or asyncio.sleep
        self._running = False
        self._task = None  # type: Optional[asyncio.Task]

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Start the background loop on the running event loop.

        Side Effects: Creates asyncio task; must be called from a coroutine
        """
        if self._running:
            logger.warning(f"[SCHEDULER] {self._name} already running, ignoring start")
            return

        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run_loop())

        logger.info(
            f"[SCHEDULER] Started | task={self._name} | "
            f"interval_seconds={self._interval_seconds}"
        )

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to exit."""
        if not self._running:
            return

        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"[SCHEDULER] Stopped | task={self._name}")

    async def run_once(self) -> None:
        """Invoke the callback a single time, isolating its errors."""
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[SCHEDULER] Callback failed | task={self._name} | error={str(e)}"
            )

    async def _run_loop(self) -> None:
        if self._run_immediately:
            await self.run_once()

        while self._running:
            try:
                await self._sleep(self._interval_seconds)
            except asyncio.CancelledError:
                break
            await self.run_once()


__all__ = ["PeriodicTask"]
