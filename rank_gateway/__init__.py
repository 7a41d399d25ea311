"""
============================================================================
Rank Gateway v1.0.0
Security and Reliability Layer for Privileged Rank Operations
============================================================================

Request path: rate limit -> auth guard -> dedup -> cooldown -> domain logic.
Background: audit log, webhook notifier with circuit breaker, session
monitor with hysteresis.

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

__version__ = "1.0.0"
