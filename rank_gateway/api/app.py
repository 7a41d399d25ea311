"""
============================================================================
Rank Gateway v1.0.0
Application Factory - FastAPI Wiring
============================================================================

Reliability Level: L6 Critical
Input Constraints: A constructed SecurityLayer
Side Effects: Starts/stops the layer's background tasks with the app

create_app() mounts the operator router, the exception handlers, the
request-id middleware and the /health and /metrics endpoints. Domain routes
are added by the caller and guarded with PrivilegedRequestGuard.

============================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rank_gateway import __version__
from rank_gateway.api.dependencies import REQUEST_ID_HEADER, get_request_id
from rank_gateway.api.errors import register_exception_handlers
from rank_gateway.api.operations import router as operations_router
from rank_gateway.layer import SecurityLayer

# Configure module logger
logger = logging.getLogger(__name__)


def create_app(layer: SecurityLayer) -> FastAPI:
    """
    Build the gateway application around an existing SecurityLayer.

    Startup:
        - Start sweeps, webhook tick and session probe
    Shutdown:
        - Stop every background task, close the webhook client
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        layer.start()
        logger.info(f"[GATEWAY] Rank Gateway v{__version__} ready")
        try:
            yield
        finally:
            await layer.stop()

    app = FastAPI(
        title="Rank Gateway",
        description="Security and reliability layer for privileged rank operations.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.security_layer = layer

    # No CORS headers unless origins are configured
    cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = get_request_id(request)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    register_exception_handlers(app)
    app.include_router(operations_router)

    @app.get(
        "/health",
        summary="Health Check",
        description="Lightweight health check for load balancers and monitoring.",
        tags=["System"]
    )
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get(
        "/metrics",
        summary="Prometheus Metrics",
        description="Exposes Prometheus metrics for observability.",
        tags=["Observability"]
    )
    async def metrics():
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    return app


__all__ = ["create_app"]
