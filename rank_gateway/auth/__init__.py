# ============================================================================
# Rank Gateway v1.0.0
# Auth Module - API Key Verification and Lockout
# ============================================================================

from rank_gateway.auth.guard import AuthGuard, AuthResult, FailedAuthRecord

__all__ = ["AuthGuard", "AuthResult", "FailedAuthRecord"]
