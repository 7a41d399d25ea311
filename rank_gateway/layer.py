"""
============================================================================
Rank Gateway v1.0.0
Security Layer - Composition Root
============================================================================

Reliability Level: L6 Critical
Input Constraints: Validated GatewayConfig
Side Effects: Starts/stops every background task of the layer

REQUEST PROTOCOL
----------------
Before domain logic (admit):
    rate limit -> auth guard -> dedup -> cooldown
After domain logic (record_outcome):
    audit always; cooldown + webhook only when a rank actually changed

All services share one Clock so a simulated clock drives the whole layer.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from rank_gateway.auth.guard import AuthGuard
from rank_gateway.clock import Clock, SystemClock
from rank_gateway.config import GatewayConfig
from rank_gateway.errors import (
    CooldownActiveError,
    DuplicateRequestError,
    ErrorKind,
    RateLimitError,
)
from rank_gateway.logic.cooldown import CooldownTracker
from rank_gateway.logic.deduplicator import Deduplicator, build_dedup_key
from rank_gateway.logic.rate_limiter import RequestRateLimiter
from rank_gateway.observability import metrics
from rank_gateway.observability.audit_log import AuditEntry, AuditLog
from rank_gateway.observability.backoff import backoff_from_name
from rank_gateway.observability.embeds import RankChange
from rank_gateway.observability.webhook_notifier import WebhookNotifier
from rank_gateway.transport.session_monitor import Probe, SessionMonitor

# Configure module logger
logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    RANK_CHANGE = "rank_change"
    PROMOTION = "promotion"
    DEMOTION = "demotion"


@dataclass(frozen=True)
class PrivilegedContext:
    """Admitted privileged request, handed to domain logic."""
    request_id: str
    client_ip: str
    action: str
    subject_id: str
    dedup_key: str
    target_rank: Optional[Any] = None


class SecurityLayer:
    """
    Owns every guard and background service of the gateway.

    Reliability Level: L6 Critical
    Thread Safety: Delegated to each service's own lock

    USAGE:
        layer = SecurityLayer(GatewayConfig.from_environment())
        layer.start()
        context = layer.admit(ip, api_key, "promote", subject_id, request_id)
        ...
        layer.record_outcome(context, success=True, change=change,
                             notification=NotificationKind.PROMOTION)
        await layer.stop()
    """

    def __init__(
        self,
        config: GatewayConfig,
        clock: Optional[Clock] = None,
        session_probe: Optional[Probe] = None,
        expected_principal: Optional[str] = None,
        webhook_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()

        self.rate_limiter = RequestRateLimiter(
            window_seconds=config.rate_limit_window_seconds,
            max_requests=config.rate_limit_max,
            clock=self.clock,
        )
        self.auth_guard = AuthGuard(
            key_source=lambda: self.config.api_key or "",
            ip_allowlist=config.ip_allowlist,
            lock_threshold=config.lockout_threshold,
            lock_duration_seconds=config.lockout_duration_seconds,
            attempt_window_seconds=config.attempt_window_seconds,
            clock=self.clock,
        )
        self.deduplicator = Deduplicator(
            window_seconds=config.dedup_window_seconds,
            clock=self.clock,
        )
        self.cooldown = CooldownTracker(
            duration_seconds=config.cooldown_seconds,
            clock=self.clock,
        )
        self.audit_log = AuditLog(
            max_entries=config.audit_max_entries,
            max_age_seconds=config.audit_max_age_seconds,
            clock=self.clock,
        )
        self.notifier = WebhookNotifier(
            webhook_url=config.webhook_url,
            timeout_seconds=config.webhook_timeout_seconds,
            max_retries=config.webhook_max_retries,
            backoff=backoff_from_name(config.webhook_backoff, config.webhook_retry_delay_seconds),
            max_queue_size=config.webhook_max_queue_size,
            breaker_threshold=config.breaker_threshold,
            breaker_reset_seconds=config.breaker_reset_seconds,
            clock=self.clock,
            client=webhook_client,
        )

        self.session_monitor = None  # type: Optional[SessionMonitor]
        if session_probe is not None:
            self.session_monitor = SessionMonitor(
                probe=session_probe,
                expected_principal=expected_principal,
                failure_threshold=config.session_failure_threshold,
                probe_timeout_seconds=config.session_probe_timeout_seconds,
                notifier=self.notifier,
                clock=self.clock,
            )

    # -------------------------------------------------------------------------
    # Request path
    # -------------------------------------------------------------------------

    def authenticate(self, client_ip: str, api_key: Optional[str]) -> None:
        """
        Rate limit then verify the credential.

        Raises:
            RateLimitError: RATE-001
            AuthError: AUTH-001 through AUTH-004
        """
        status = self.rate_limiter.hit(client_ip)
        if not status.allowed:
            metrics.record_request_rejection(ErrorKind.RATE_LIMITED.value)
            raise RateLimitError(status.retry_after_seconds)

        self.auth_guard.verify(client_ip, api_key).raise_for_rejection()

    def admit(
        self,
        client_ip: str,
        api_key: Optional[str],
        action: str,
        subject_id: Any,
        request_id: str,
        rank: Optional[Any] = None,
        rank_name: Optional[str] = None,
        authenticated: bool = False,
    ) -> PrivilegedContext:
        """
        Run the full pre-operation check chain for a mutating request.

        authenticated=True skips the rate-limit and auth steps for callers
        that already ran authenticate() for this request.

        Raises:
            GatewayError: First failing guard, in chain order
        """
        if not authenticated:
            self.authenticate(client_ip, api_key)

        dedup_key = build_dedup_key(action, subject_id, rank, rank_name)
        dedup = self.deduplicator.check_and_record(dedup_key, request_id)
        if dedup.duplicate:
            metrics.record_request_rejection(ErrorKind.DUPLICATE_REQUEST.value)
            raise DuplicateRequestError(dedup.original_request_id, dedup.retry_after_seconds)

        cooldown = self.cooldown.check_cooldown(subject_id)
        if cooldown.active:
            metrics.record_request_rejection(ErrorKind.COOLDOWN_ACTIVE.value)
            logger.info(
                f"[COOL-001] Cooldown active | subject_id={subject_id} | "
                f"remaining={cooldown.remaining_seconds}s"
            )
            raise CooldownActiveError(cooldown.remaining_seconds)

        return PrivilegedContext(
            request_id=request_id,
            client_ip=client_ip,
            action=action,
            subject_id=str(subject_id),
            dedup_key=dedup_key,
            target_rank=rank_name or rank,
        )

    def record_outcome(
        self,
        context: PrivilegedContext,
        success: bool,
        error: Optional[str] = None,
        change: Optional[RankChange] = None,
        notification: NotificationKind = NotificationKind.RANK_CHANGE,
    ) -> AuditEntry:
        """
        Post-operation protocol.

        The audit entry is always written. The cooldown clock and the
        webhook notification only follow a successful operation whose rank
        actually changed.
        """
        entry = self.audit_log.add(
            action=context.action,
            subject_id=context.subject_id,
            success=success,
            error=error,
            originator_ip=context.client_ip,
            username=change.username if change else None,
            target_rank=context.target_rank,
            old_rank=change.old_rank if change else None,
            new_rank=change.new_rank if change else None,
        )

        if success and change is not None and change.old_rank != change.new_rank:
            self.cooldown.record_change(context.subject_id)
            if notification is NotificationKind.PROMOTION:
                self.notifier.notify_promotion(change)
            elif notification is NotificationKind.DEMOTION:
                self.notifier.notify_demotion(change)
            else:
                self.notifier.notify_rank_change(change)

        return entry

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def security_stats(self) -> Dict[str, Any]:
        breaker = self.notifier.breaker_state
        auth_stats = self.auth_guard.stats()
        return {
            "locked_ips": auth_stats["locked_ips"],
            "tracked_auth_records": auth_stats["tracked_records"],
            "active_cooldowns": self.cooldown.active_count,
            "pending_dedup_entries": self.deduplicator.pending_count,
            "webhook": {
                "enabled": self.notifier.is_enabled,
                "queue_depth": self.notifier.queue_depth,
                "breaker_open": breaker.is_open,
                "consecutive_failures": breaker.consecutive_failures,
            },
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start every periodic task; must run inside the event loop."""
        self.rate_limiter.start()
        self.auth_guard.start()
        self.deduplicator.start()
        self.cooldown.start()
        self.audit_log.start()
        self.notifier.start()
        if self.session_monitor is not None:
            self.session_monitor.start(self.config.session_check_interval_seconds)
        logger.info("[GATEWAY] Security layer started")

    async def stop(self) -> None:
        if self.session_monitor is not None:
            await self.session_monitor.stop()
        await self.notifier.stop()
        await self.audit_log.stop()
        await self.cooldown.stop()
        await self.deduplicator.stop()
        await self.auth_guard.stop()
        await self.rate_limiter.stop()
        logger.info("[GATEWAY] Security layer stopped")


__all__ = ["NotificationKind", "PrivilegedContext", "SecurityLayer"]
