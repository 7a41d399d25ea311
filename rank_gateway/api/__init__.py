# ============================================================================
# Rank Gateway v1.0.0
# API Module
# ============================================================================

from rank_gateway.api.app import create_app
from rank_gateway.api.dependencies import PrivilegedRequestGuard, require_api_key
from rank_gateway.api.operations import router as operations_router

__all__ = ["create_app", "PrivilegedRequestGuard", "require_api_key", "operations_router"]
