"""
============================================================================
Rank Gateway v1.0.0
Observability Module - Audit Log, Webhook Notifications, Prometheus Metrics
============================================================================

Reliability Level: L5 High
Input Constraints: None
Side Effects: Exposes Prometheus metrics, HTTP POST to the webhook sink

============================================================================
"""

from rank_gateway.observability.audit_log import (
    AuditEntry,
    AuditLog,
    AuditOutcome,
    AuditPage,
    AuditStats,
)
from rank_gateway.observability.embeds import RankChange
from rank_gateway.observability.webhook_notifier import (
    DeliveryState,
    WebhookNotifier,
    WebhookQueueItem,
)

__all__ = [
    "AuditEntry",
    "AuditLog",
    "AuditOutcome",
    "AuditPage",
    "AuditStats",
    "DeliveryState",
    "RankChange",
    "WebhookNotifier",
    "WebhookQueueItem",
]
