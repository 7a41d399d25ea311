"""
============================================================================
Rank Gateway v1.0.0
Logic Layer - Request Shaping
============================================================================

- Deduplicator: short-window replay suppression (DEDUP-001)
- CooldownTracker: minimum interval between rank changes (COOL-001)
- RequestRateLimiter: per-IP fixed window (RATE-001)

============================================================================
"""

from rank_gateway.logic.cooldown import CooldownStatus, CooldownTracker
from rank_gateway.logic.deduplicator import Deduplicator, DedupResult, build_dedup_key
from rank_gateway.logic.rate_limiter import RateLimitStatus, RequestRateLimiter

__all__ = [
    "CooldownStatus",
    "CooldownTracker",
    "DedupResult",
    "Deduplicator",
    "RateLimitStatus",
    "RequestRateLimiter",
    "build_dedup_key",
]
