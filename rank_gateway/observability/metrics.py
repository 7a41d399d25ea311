"""
============================================================================
Rank Gateway v1.0.0
Prometheus Metrics - Security Layer Observability
============================================================================

Reliability Level: L5 High
Input Constraints: Label values must be short, low-cardinality strings
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- gateway_auth_rejections_total: Auth rejections by reason
- gateway_auth_lockouts_total: IPs placed into lockout
- gateway_request_rejections_total: Rate limit / dedup / cooldown rejections
- gateway_webhook_deliveries_total: Webhook outcomes (delivered/retry/dropped)
- gateway_webhook_breaker_open: 1 while the notifier breaker is open
- gateway_webhook_queue_depth: Items waiting in the notifier queue
- gateway_session_healthy: 1 while the upstream session is healthy

Recording helpers never raise; failures are logged with OBS error codes.
============================================================================
"""

import logging

from prometheus_client import Counter, Gauge

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

AUTH_REJECTIONS = Counter(
    "gateway_auth_rejections_total",
    "Total number of privileged requests rejected by the auth guard",
    ["reason"]
)

AUTH_LOCKOUTS = Counter(
    "gateway_auth_lockouts_total",
    "Total number of IP lockouts triggered by repeated auth failures"
)

REQUEST_REJECTIONS = Counter(
    "gateway_request_rejections_total",
    "Total number of requests rejected by rate limit, dedup or cooldown",
    ["kind"]
)

WEBHOOK_DELIVERIES = Counter(
    "gateway_webhook_deliveries_total",
    "Webhook delivery attempts by outcome",
    ["outcome"]
)

WEBHOOK_BREAKER_OPEN = Gauge(
    "gateway_webhook_breaker_open",
    "1 while the webhook circuit breaker is open, otherwise 0"
)

WEBHOOK_QUEUE_DEPTH = Gauge(
    "gateway_webhook_queue_depth",
    "Number of notifications waiting for delivery"
)

SESSION_HEALTHY = Gauge(
    "gateway_session_healthy",
    "1 while the upstream session probe reports healthy, otherwise 0"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_auth_rejection(reason: str) -> None:
    """Count an auth rejection (reason is an ErrorKind value)."""
    try:
        AUTH_REJECTIONS.labels(reason=reason).inc()
    except Exception as e:
        logger.error("[OBS-001] Failed to record auth_rejection metric | error=%s", str(e))


def record_lockout() -> None:
    try:
        AUTH_LOCKOUTS.inc()
    except Exception as e:
        logger.error("[OBS-002] Failed to record lockout metric | error=%s", str(e))


def record_request_rejection(kind: str) -> None:
    """Count a rate-limit, duplicate or cooldown rejection."""
    try:
        REQUEST_REJECTIONS.labels(kind=kind).inc()
    except Exception as e:
        logger.error("[OBS-003] Failed to record request_rejection metric | error=%s", str(e))


def record_webhook_delivery(outcome: str) -> None:
    """
    Count a webhook delivery outcome.

    Args:
        outcome: "delivered", "failed", "retry_scheduled" or "dropped"
    """
    try:
        WEBHOOK_DELIVERIES.labels(outcome=outcome).inc()
    except Exception as e:
        logger.error("[OBS-004] Failed to record webhook_delivery metric | error=%s", str(e))


def update_breaker_state(is_open: bool) -> None:
    try:
        WEBHOOK_BREAKER_OPEN.set(1 if is_open else 0)
    except Exception as e:
        logger.error("[OBS-005] Failed to update breaker_open metric | error=%s", str(e))


def update_queue_depth(depth: int) -> None:
    try:
        WEBHOOK_QUEUE_DEPTH.set(depth)
    except Exception as e:
        logger.error("[OBS-006] Failed to update queue_depth metric | error=%s", str(e))


def update_session_health(healthy: bool) -> None:
    try:
        SESSION_HEALTHY.set(1 if healthy else 0)
    except Exception as e:
        logger.error("[OBS-007] Failed to update session_healthy metric | error=%s", str(e))


# ============================================================================
# Reliability Audit
# ============================================================================
#
# [Reliability Audit]
# Label Cardinality: [Verified - reason/kind/outcome are closed sets]
# Error Handling: [OBS-001 through OBS-007, never raised to callers]
# Credentials: [Verified - no key material in labels]
#
# ============================================================================
