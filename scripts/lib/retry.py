"""
Bounded retry policy shared by the RPC client and the block range scanner.

A policy only answers two questions: may another attempt be made, and how
long to wait before it. Callers keep their own loops so each path can apply
its own degradation (e.g. shrinking a block range) between attempts.
"""

import random
from dataclasses import dataclass


# Retry configuration
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_DELAY = 32.0  # seconds
DEFAULT_JITTER = 0.1  # ±10%


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff policy with a bounded number of attempts.

    ``max_attempts`` counts every try, including the first one.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = DEFAULT_JITTER

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def can_retry(self, attempt: int) -> bool:
        """Whether another attempt is allowed after ``attempt`` (1-based) failed."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """
        Get the sleep time before the attempt following ``attempt``.

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            Delay in seconds, capped at max_delay and jittered
        """
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        delay = min(delay, self.max_delay)
        jitter_range = delay * self.jitter
        return max(0.0, delay + random.uniform(-jitter_range, jitter_range))
