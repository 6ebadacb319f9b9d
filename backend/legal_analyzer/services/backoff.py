"""
Backoff policy for the fallback request executor.
Computes the delay before the next attempt and decides whether another
attempt is permitted for a classified failure.
"""

import random
from dataclasses import dataclass
from typing import Callable, Optional

from ..models.config import RetryConfig
from .error_classifier import ErrorKind, ErrorRecord


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: delay(n) = min(base * multiplier^(n-1), max)."""
    max_attempts: int = 3
    base_delay_ms: float = 1000
    multiplier: float = 2.0
    max_delay_ms: float = 30000
    jitter: float = 0.0
    respect_retry_after: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be within [0, 1]")

    @classmethod
    def from_config(cls, config: RetryConfig) -> "BackoffPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            multiplier=config.multiplier,
            max_delay_ms=config.max_delay_ms,
            jitter=config.jitter,
            respect_retry_after=config.respect_retry_after
        )

    def delay_ms(self, attempt: int, rand: Optional[Callable[[], float]] = None) -> float:
        """
        Delay to wait after failed attempt number `attempt` (1-indexed).

        Args:
            attempt: Number of the attempt that just failed
            rand: Source of uniform [0, 1) values for jitter

        Returns:
            Delay in milliseconds, never above max_delay_ms
        """
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")

        try:
            delay = self.base_delay_ms * (self.multiplier ** (attempt - 1))
        except OverflowError:
            delay = self.max_delay_ms
        delay = min(delay, self.max_delay_ms)

        if self.jitter:
            draw = (rand or random.random)()
            delay = min(delay + delay * self.jitter * draw, self.max_delay_ms)

        return delay

    def should_retry(self, record: ErrorRecord, attempt: int) -> bool:
        """False once attempt >= max_attempts, otherwise the record's retryable flag."""
        if attempt >= self.max_attempts:
            return False
        return record.retryable

    def delay_for(self, record: ErrorRecord, attempt: int,
                  rand: Optional[Callable[[], float]] = None) -> float:
        """Delay after a failed attempt, stretched to Retry-After for rate limits."""
        delay = self.delay_ms(attempt, rand)

        if (
            self.respect_retry_after
            and record.kind == ErrorKind.RATE_LIMIT_EXCEEDED
            and record.retry_after is not None
        ):
            requested = min(record.retry_after * 1000.0, self.max_delay_ms)
            delay = max(delay, requested)

        return delay
