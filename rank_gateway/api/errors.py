"""
============================================================================
Rank Gateway v1.0.0
API Error Handlers - Structured Rejection Bodies
============================================================================

Reliability Level: L6 Critical
Input Constraints: GatewayError raised by a guard or dependency
Side Effects: Logs unhandled errors

Rejection body:
    {"success": false, "error": <kind>, "message": str,
     "retryAfter"?: int, "originalRequestId"?: str}
plus a Retry-After header whenever retryAfter is present.

============================================================================
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rank_gateway.errors import GatewayError

# Configure module logger
logger = logging.getLogger(__name__)


INTERNAL_ERROR_CODE = "SYS-500"


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    headers = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(),
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.

    Side Effects: Logs error, returns safe response
    """
    logger.exception(
        f"[{INTERNAL_ERROR_CODE}] Unhandled exception | path={request.url.path} | error={str(exc)}"
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "InternalError",
            "message": "Internal server error. This incident has been logged.",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]
