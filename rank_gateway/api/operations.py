"""
============================================================================
Rank Gateway v1.0.0
Operator API - Audit, Security and Session Status
============================================================================

Reliability Level: L5 High
Input Constraints: x-api-key header on every endpoint
Side Effects: None (read-only)

ENDPOINTS:
    GET /api/logs        - Filtered, paginated audit entries
    GET /api/stats       - Audit aggregate counts
    GET /api/security    - Lockouts, cooldowns, dedup and webhook state
    GET /health/session  - Upstream session health snapshot

============================================================================
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from rank_gateway.api.dependencies import get_security_layer, require_api_key
from rank_gateway.api.schemas import (
    AuditEntryOut,
    AuditPageOut,
    AuditStatsOut,
    SecurityStatsOut,
    SessionHealthOut,
)


# ============================================================================
# Router Configuration
# ============================================================================

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get(
    "/api/logs",
    response_model=AuditPageOut,
    summary="Audit Log",
    description="Audit entries, newest first. Filters apply before pagination.",
    tags=["Operations"]
)
async def get_logs(
    request: Request,
    action: Optional[str] = Query(None, description="Only entries for this action"),
    success: Optional[bool] = Query(None, description="Only successful or failed entries"),
    subject_id: Optional[str] = Query(None, description="Only entries for this subject"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> AuditPageOut:
    page = get_security_layer(request).audit_log.query(
        action=action,
        success=success,
        subject_id=subject_id,
        limit=limit,
        offset=offset,
    )
    return AuditPageOut(
        entries=[AuditEntryOut.model_validate(e) for e in page.entries],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get(
    "/api/stats",
    response_model=AuditStatsOut,
    summary="Operation Statistics",
    tags=["Operations"]
)
async def get_stats(request: Request) -> AuditStatsOut:
    stats = get_security_layer(request).audit_log.stats()
    return AuditStatsOut(
        total=stats.total,
        successful=stats.successful,
        failed=stats.failed,
        by_action=stats.by_action,
    )


@router.get(
    "/api/security",
    response_model=SecurityStatsOut,
    summary="Security Layer Status",
    tags=["Operations"]
)
async def get_security(request: Request) -> SecurityStatsOut:
    return SecurityStatsOut(**get_security_layer(request).security_stats())


@router.get(
    "/health/session",
    response_model=SessionHealthOut,
    summary="Upstream Session Health",
    tags=["System"]
)
async def get_session_health(request: Request) -> SessionHealthOut:
    monitor = get_security_layer(request).session_monitor
    if monitor is None:
        return SessionHealthOut(enabled=False)
    return SessionHealthOut.model_validate(monitor.get_health())
