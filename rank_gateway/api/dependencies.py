"""
============================================================================
Rank Gateway v1.0.0
API Dependencies - Privileged Request Guard
============================================================================

Reliability Level: L6 Critical
Input Constraints:
    - x-api-key header
    - JSON body carrying the subject (and optional rank / rank name)
Side Effects:
    - Counts the request against the caller's rate-limit window
    - Records auth failures, dedup entries

GUARD ORDER:
1. Rate limit (RATE-001)
2. Auth guard (AUTH-001..004)
3. Dedup (DEDUP-001)
4. Cooldown (COOL-001)

============================================================================
"""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException, Request

from rank_gateway.layer import PrivilegedContext, SecurityLayer

# Configure module logger
logger = logging.getLogger(__name__)


API_KEY_HEADER = "x-api-key"
REQUEST_ID_HEADER = "X-Request-ID"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def extract_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Note: Handles X-Forwarded-For header for reverse proxy setups
    """
    # Check for forwarded header (reverse proxy)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    # Fall back to direct client IP
    return request.client.host if request.client else "0.0.0.0"


def get_request_id(request: Request) -> str:
    """Request id from X-Request-ID, generated when absent."""
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id

    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    return request_id


def get_security_layer(request: Request) -> SecurityLayer:
    return request.app.state.security_layer


async def _read_json_body(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


# ============================================================================
# DEPENDENCIES
# ============================================================================

def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
) -> str:
    """
    Rate limit and authenticate an operator request.

    Returns:
        str: Client IP of the authenticated caller
    """
    client_ip = extract_client_ip(request)
    get_security_layer(request).authenticate(client_ip, x_api_key)
    return client_ip


class PrivilegedRequestGuard:
    """
    FastAPI dependency guarding one mutating action.

    Reliability Level: L6 Critical
    Side Effects: See module docstring

    USAGE:
        promote_guard = PrivilegedRequestGuard("promote")

        @router.post("/api/promote")
        async def promote(context: PrivilegedContext = Depends(promote_guard)):
            ...
    """

    def __init__(
        self,
        action: str,
        subject_field: str = "subject_id",
        rank_field: str = "rank",
        rank_name_field: str = "rank_name",
    ) -> None:
        self.action = action
        self.subject_field = subject_field
        self.rank_field = rank_field
        self.rank_name_field = rank_name_field

    async def __call__(
        self,
        request: Request,
        x_api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
    ) -> PrivilegedContext:
        layer = get_security_layer(request)
        client_ip = extract_client_ip(request)
        request_id = get_request_id(request)

        layer.authenticate(client_ip, x_api_key)

        payload = await _read_json_body(request)
        subject_id = payload.get(self.subject_field)
        if subject_id is None or subject_id == "":
            raise HTTPException(
                status_code=422,
                detail=f"Missing required field: {self.subject_field}",
            )

        context = layer.admit(
            client_ip=client_ip,
            api_key=x_api_key,
            action=self.action,
            subject_id=subject_id,
            request_id=request_id,
            rank=payload.get(self.rank_field),
            rank_name=payload.get(self.rank_name_field),
            authenticated=True,
        )

        logger.info(
            f"[GATEWAY] Privileged request admitted | action={self.action} | "
            f"subject_id={context.subject_id} | request_id={request_id} | ip={client_ip}"
        )
        return context


__all__ = [
    "API_KEY_HEADER",
    "REQUEST_ID_HEADER",
    "PrivilegedRequestGuard",
    "extract_client_ip",
    "get_request_id",
    "get_security_layer",
    "require_api_key",
]
