"""
============================================================================
Rank Gateway v1.0.0
Webhook Notifier - Queued Delivery with Retry and Circuit Breaker
============================================================================

Reliability Level: L5 High
Input Constraints: Webhook URL optional (absent = notifications disabled)
Side Effects: HTTP POST to the configured webhook endpoint

MANDATE:
- send() never blocks and never raises into the request path
- One worker drains the queue serially (single-flight, FIFO)
- Bounded queue, oldest item dropped on overflow
- Breaker OPEN stops draining; items stay queued until tick() after reset

ITEM STATE MACHINE
------------------
PENDING -> IN_FLIGHT -> DELIVERED
                     -> RETRY_SCHEDULED -> PENDING
                     -> DROPPED

Error Codes:
- HOOK-001: Webhook delivery failed (retried, then dropped)

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, Optional

import httpx

from rank_gateway.clock import Clock, SystemClock
from rank_gateway.errors import DeliveryError, ErrorCode
from rank_gateway.observability import metrics
from rank_gateway.observability.backoff import BackoffStrategy, LinearBackoff
from rank_gateway.observability.circuit_breaker import (
    DEFAULT_BREAKER_RESET_SECONDS,
    DEFAULT_BREAKER_THRESHOLD,
    CircuitBreaker,
    CircuitBreakerState,
)
from rank_gateway.observability.embeds import (
    DEFAULT_FOOTER_TEXT,
    RankChange,
    demotion_embed,
    error_embed,
    promotion_embed,
    rank_change_embed,
    session_alert_embed,
    session_recovered_embed,
)
from rank_gateway.scheduling import PeriodicTask

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_QUEUE_SIZE = 100
DEFAULT_TICK_INTERVAL_SECONDS = 5.0
USER_AGENT = "RankGateway/1.0"


class DeliveryState(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RETRY_SCHEDULED = "retry_scheduled"
    DELIVERED = "delivered"
    DROPPED = "dropped"


@dataclass
class WebhookQueueItem:
    """
    One queued notification.

    attempt_count is the number of retries already consumed; the item is
    dropped once a failure happens with attempt_count == max_retries.
    """
    payload: Dict[str, Any]
    enqueued_at: float
    attempt_count: int = 0
    not_before: float = 0.0
    state: DeliveryState = DeliveryState.PENDING


# =============================================================================
# WEBHOOK NOTIFIER
# =============================================================================

class WebhookNotifier:
    """
    Best-effort webhook delivery client.

    Reliability Level: L5 High
    Thread Safety: Queue mutations under a mutex; worker runs on asyncio
    Side Effects: HTTP POST via httpx.AsyncClient, PeriodicTask tick

    USAGE:
        notifier = WebhookNotifier(webhook_url=config.webhook_url)
        notifier.start()
        notifier.notify_promotion(change)
        ...
        await notifier.stop()
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff: Optional[BackoffStrategy] = None,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
        breaker_threshold: int = DEFAULT_BREAKER_THRESHOLD,
        breaker_reset_seconds: float = DEFAULT_BREAKER_RESET_SECONDS,
        clock: Optional[Clock] = None,
        client: Optional[httpx.AsyncClient] = None,
        footer_text: str = DEFAULT_FOOTER_TEXT,
        tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS,
    ) -> None:
        if max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be positive, got: {max_queue_size}")
        if max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got: {max_retries}")

        self._webhook_url = webhook_url or None
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._backoff = backoff or LinearBackoff()
        self._max_queue_size = max_queue_size
        self._clock = clock or SystemClock()
        self._breaker = CircuitBreaker(
            threshold=breaker_threshold,
            reset_seconds=breaker_reset_seconds,
            clock=self._clock,
        )
        self._footer_text = footer_text

        self._client = client
        self._owns_client = client is None

        self._queue = deque()  # type: Deque[WebhookQueueItem]
        self._lock = threading.Lock()
        self._worker = None  # type: Optional[asyncio.Task]
        self._draining = False
        self._reset_timer = None  # type: Optional[asyncio.TimerHandle]
        self._ticker = PeriodicTask("webhook-tick", tick_interval_seconds, self.tick)

        if self.is_enabled:
            logger.info(
                f"[WEBHOOK] Notifications enabled | max_retries={max_retries} | "
                f"max_queue_size={max_queue_size} | breaker_threshold={breaker_threshold}"
            )
        else:
            logger.info("[WEBHOOK] No webhook URL configured, notifications disabled")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def is_enabled(self) -> bool:
        return self._webhook_url is not None

    @property
    def queue_depth(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def breaker_state(self) -> CircuitBreakerState:
        return self._breaker.snapshot()

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def send(self, payload: Dict[str, Any]) -> None:
        """
        Queue a payload for delivery and wake the worker.

        Never raises. Without a running event loop the item stays queued
        until the next tick() or flush().
        """
        if not self.is_enabled:
            return

        try:
            item = WebhookQueueItem(
                payload=payload,
                enqueued_at=self._clock.time(),
            )
            with self._lock:
                self._queue.append(item)
                self._enforce_bound()
                depth = len(self._queue)
            metrics.update_queue_depth(depth)
            self._kick()
        except Exception as e:
            logger.error(f"[{ErrorCode.DELIVERY_FAILED}] Failed to enqueue notification | error={str(e)}")

    def _enforce_bound(self) -> None:
        """Drop oldest items beyond max_queue_size (lock held)."""
        while len(self._queue) > self._max_queue_size:
            dropped = self._queue.popleft()
            dropped.state = DeliveryState.DROPPED
            metrics.record_webhook_delivery("dropped")
            logger.warning(
                f"[{ErrorCode.DELIVERY_FAILED}] Queue full, dropping oldest notification | "
                f"max_queue_size={self._max_queue_size}"
            )

    def _kick(self) -> None:
        """Start the worker if it is not already running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    async def _drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while True:
                if self._breaker.is_open():
                    logger.debug("[WEBHOOK] Breaker open, draining paused")
                    return

                with self._lock:
                    if not self._queue:
                        return
                    item = self._queue.popleft()
                    depth = len(self._queue)
                metrics.update_queue_depth(depth)

                # Serial delivery: a retried head item holds back everything
                # queued behind it until its backoff elapses.
                wait = item.not_before - self._clock.time()
                if wait > 0:
                    await self._clock.sleep(wait)

                item.state = DeliveryState.IN_FLIGHT
                try:
                    await self._deliver(item.payload)
                except DeliveryError as e:
                    self._handle_failure(item, e)
                    continue

                item.state = DeliveryState.DELIVERED
                self._breaker.record_success()
                metrics.record_webhook_delivery("delivered")
        finally:
            self._draining = False

    def _handle_failure(self, item: WebhookQueueItem, error: DeliveryError) -> None:
        metrics.record_webhook_delivery("failed")
        opened = self._breaker.record_failure()
        retries_left = item.attempt_count < self._max_retries

        logger.warning(
            f"[{ErrorCode.DELIVERY_FAILED}] Webhook delivery failed | "
            f"attempt={item.attempt_count + 1} | error={error.message}"
        )

        if not retries_left:
            item.state = DeliveryState.DROPPED
            metrics.record_webhook_delivery("dropped")
            logger.error(
                f"[{ErrorCode.DELIVERY_FAILED}] Retries exhausted, dropping notification | "
                f"max_retries={self._max_retries}"
            )
            if opened:
                self._schedule_reset_wakeup()
            return

        item.attempt_count += 1
        metrics.record_webhook_delivery("retry_scheduled")

        with self._lock:
            if opened:
                item.state = DeliveryState.PENDING
                item.not_before = self._clock.time()
                self._queue.appendleft(item)
            else:
                item.state = DeliveryState.RETRY_SCHEDULED
                item.not_before = self._clock.time() + self._backoff.delay(item.attempt_count)
                self._queue.append(item)
            self._enforce_bound()
            depth = len(self._queue)
        metrics.update_queue_depth(depth)

        if opened:
            self._schedule_reset_wakeup()

    def _schedule_reset_wakeup(self) -> None:
        """Resume draining once the breaker's reset duration has elapsed."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._reset_timer is not None:
            self._reset_timer.cancel()
        self._reset_timer = loop.call_later(self._breaker.reset_seconds, self._kick)

    async def _deliver(self, payload: Dict[str, Any]) -> None:
        """
        POST one payload.

        Raises:
            DeliveryError: on timeout, transport error, an unbuildable
                request (unserializable payload, invalid URL) or non-2xx status
        """
        client = self._get_client()
        try:
            response = await client.post(
                self._webhook_url,
                json=payload,
                headers={"User-Agent": USER_AGENT},
                timeout=self._timeout_seconds,
            )
        except httpx.TimeoutException:
            raise DeliveryError("Request timeout")
        except httpx.HTTPError as e:
            raise DeliveryError(f"Request failed: {str(e)}")
        except (TypeError, ValueError, httpx.InvalidURL) as e:
            raise DeliveryError(f"Request could not be built: {str(e)}")

        if not 200 <= response.status_code < 300:
            raise DeliveryError(f"HTTP {response.status_code}", status_code=response.status_code)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._client

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait until the worker has nothing more it can deliver right now."""
        worker = self._worker
        if worker is not None and not worker.done():
            await worker
        if self.queue_depth and not self._breaker.is_open():
            await self._drain()

    async def tick(self) -> None:
        """Periodic wakeup: resume draining after a breaker reset."""
        if self.queue_depth and not self._breaker.is_open():
            self._kick()
            await self.flush()

    def start(self) -> None:
        if self.is_enabled:
            self._ticker.start()

    async def stop(self) -> None:
        await self._ticker.stop()

        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None

        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._worker = None

        remaining = self.queue_depth
        if remaining:
            logger.warning(f"[WEBHOOK] Stopped with undelivered notifications | count={remaining}")

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Notification builders
    # -------------------------------------------------------------------------

    def notify_rank_change(self, change: RankChange) -> None:
        self.send(rank_change_embed(change, self._clock.now(), self._footer_text).to_payload())

    def notify_promotion(self, change: RankChange) -> None:
        self.send(promotion_embed(change, self._clock.now(), self._footer_text).to_payload())

    def notify_demotion(self, change: RankChange) -> None:
        self.send(demotion_embed(change, self._clock.now(), self._footer_text).to_payload())

    def notify_error(
        self,
        action: str,
        subject_id: str,
        error: str,
        username: Optional[str] = None,
    ) -> None:
        embed = error_embed(action, subject_id, error, self._clock.now(), username, self._footer_text)
        self.send(embed.to_payload())

    def notify_session_alert(
        self,
        reason: str,
        consecutive_failures: int,
        principal: Optional[str] = None,
    ) -> None:
        embed = session_alert_embed(
            reason, consecutive_failures, self._clock.now(), principal, self._footer_text,
        )
        self.send(embed.to_payload())

    def notify_session_recovered(self, principal: Optional[str] = None) -> None:
        embed = session_recovered_embed(self._clock.now(), principal, self._footer_text)
        self.send(embed.to_payload())


__all__ = [
    "DeliveryState",
    "WebhookNotifier",
    "WebhookQueueItem",
]
