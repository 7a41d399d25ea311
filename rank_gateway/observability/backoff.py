# ============================================================================
# Rank Gateway v1.0.0
# Retry Backoff Strategies - Webhook Redelivery
# ============================================================================
#
# Reliability Level: L5 High
# Purpose: Delay before a failed webhook item is retried
#
# Strategies:
#   - linear (default): base_delay * attempt
#   - fixed: base_delay
#   - exponential: base_delay * multiplier ** (attempt - 1), capped
#
# ============================================================================

import random


class BackoffStrategy:
    """Maps a 1-based attempt count to a retry delay in seconds."""

    def delay(self, attempt: int) -> float:
        raise NotImplementedError


class LinearBackoff(BackoffStrategy):

    def __init__(self, base_delay: float = 5.0):
        self.base_delay = base_delay

    def delay(self, attempt: int) -> float:
        return self.base_delay * max(1, attempt)


class FixedBackoff(BackoffStrategy):

    def __init__(self, base_delay: float = 5.0):
        self.base_delay = base_delay

    def delay(self, attempt: int) -> float:
        return self.base_delay


class ExponentialBackoff(BackoffStrategy):
    """
    Exponential Backoff Calculator.

    Args:
        base_delay: Initial delay in seconds
        multiplier: Delay multiplier per attempt
        max_delay: Maximum delay cap in seconds
        jitter: Random jitter factor (0-1), 0 disables
    """

    def __init__(
        self,
        base_delay: float = 5.0,
        multiplier: float = 2.0,
        max_delay: float = 300.0,
        jitter: float = 0.0
    ):
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter

    def delay(self, attempt: int) -> float:
        delay = self.base_delay * (self.multiplier ** (max(1, attempt) - 1))
        delay = min(delay, self.max_delay)

        # Add jitter to prevent thundering herd
        if self.jitter > 0:
            delay += delay * self.jitter * random.random()

        return delay


def backoff_from_name(name: str, base_delay: float) -> BackoffStrategy:
    """Build a strategy from its configuration name."""
    strategies = {
        "linear": LinearBackoff,
        "fixed": FixedBackoff,
        "exponential": ExponentialBackoff,
    }
    try:
        return strategies[name.lower()](base_delay)
    except KeyError:
        raise ValueError(f"Unknown backoff strategy: {name}")
