"""
============================================================================
Rank Gateway v1.0.0
API Schemas - Operator Endpoint Response Models
============================================================================

Reliability Level: L5 High
Input Constraints: Built from service snapshots (from_attributes)
Side Effects: None (pure validation)

============================================================================
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rank_gateway.observability.audit_log import AuditOutcome


class ErrorResponse(BaseModel):
    """
    Structured rejection body shared by every guard.

    Reliability Level: L6 Critical
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "error": "LockedOut",
                "message": "Locked due to too many failed authentication attempts. "
                           "Try again in 900 seconds.",
                "retryAfter": 900,
            }
        }
    )

    success: bool = Field(False, description="Always false for rejections")
    error: str = Field(..., description="Machine-readable rejection kind")
    message: str = Field(..., description="Human-readable explanation")
    retryAfter: Optional[int] = Field(None, description="Seconds until a retry may succeed")
    originalRequestId: Optional[str] = Field(None, description="Request id of the first duplicate")


class AuditEntryOut(BaseModel):

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True
    )

    id: str = Field(..., description="Audit entry identifier")
    timestamp: datetime = Field(..., description="Entry creation time (UTC)")
    action: str = Field(..., description="Operation name")
    subject_id: str = Field(..., description="Subject the operation targeted")
    outcome: AuditOutcome = Field(..., description="success or failure")
    success: bool = Field(..., description="True when outcome is success")
    error: Optional[str] = Field(None, description="Failure reason")
    originator_ip: Optional[str] = Field(None, description="Client IP of the caller")
    username: Optional[str] = None
    target_rank: Optional[Any] = None
    old_rank: Optional[Any] = None
    new_rank: Optional[Any] = None


class AuditPageOut(BaseModel):
    success: bool = True
    entries: List[AuditEntryOut] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Matching entries before pagination")
    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)


class AuditStatsOut(BaseModel):
    success: bool = True
    total: int = Field(..., ge=0)
    successful: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    by_action: Dict[str, int] = Field(default_factory=dict)


class WebhookStatusOut(BaseModel):
    enabled: bool
    queue_depth: int = Field(..., ge=0)
    breaker_open: bool
    consecutive_failures: int = Field(..., ge=0)


class SecurityStatsOut(BaseModel):
    success: bool = True
    locked_ips: List[str] = Field(default_factory=list)
    tracked_auth_records: int = Field(..., ge=0)
    active_cooldowns: int = Field(..., ge=0)
    pending_dedup_entries: int = Field(..., ge=0)
    webhook: WebhookStatusOut


class SessionHealthOut(BaseModel):
    """Session monitor snapshot; enabled is false when no probe is wired."""

    model_config = ConfigDict(from_attributes=True)

    enabled: bool = True
    healthy: Optional[bool] = None
    last_check_at: Optional[datetime] = None
    consecutive_failures: int = 0
    listener_count: int = 0
    last_error: Optional[str] = None
    expected_principal: Optional[str] = None
