"""
Rate limiting for outbound model calls.

A single location attempt fans out K grounding and M validation calls, and
retries repeat that fan-out. The limiter keeps bursts from those rounds
within the provider's request budget.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    # Request limits
    requests_per_minute: int = 120

    # Burst allowance on top of the per-minute capacity
    burst_size: int = 10


class RateLimitExceeded(Exception):
    """Raised when a model endpoint has no budget left."""

    def __init__(self, message: str, retry_after_seconds: float = 60.0):
        self.message = message
        self.retry_after = retry_after_seconds
        super().__init__(message)


class RateLimiter:
    """
    Token bucket rate limiter with one bucket per model endpoint.

    Example:
        >>> limiter = RateLimiter()
        >>> limiter.check("grounding")  # True, or raises RateLimitExceeded
    """

    def __init__(self, config: Optional[RateLimitConfig] = None, *, clock: Callable[[], float] = time.monotonic):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._buckets: Dict[str, _TokenBucket] = {}
        self._lock = Lock()

    def check(self, endpoint: str, *, cost: int = 1) -> bool:
        """
        Consume tokens for one call to ``endpoint``.

        Args:
            endpoint: Name of the model endpoint being called
            cost: Number of tokens to consume (default 1)

        Returns:
            True if the call is allowed

        Raises:
            RateLimitExceeded: If the endpoint's budget is exhausted
        """
        with self._lock:
            bucket = self._bucket(endpoint)
            if not bucket.consume(cost):
                raise RateLimitExceeded(
                    f"Rate limit exceeded for {endpoint}",
                    retry_after_seconds=bucket.time_until_available(cost),
                )
            return True

    def remaining(self, endpoint: str) -> int:
        with self._lock:
            return int(self._bucket(endpoint).available())

    def _bucket(self, endpoint: str) -> "_TokenBucket":
        if endpoint not in self._buckets:
            self._buckets[endpoint] = _TokenBucket(
                capacity=self.config.requests_per_minute + self.config.burst_size,
                refill_rate=self.config.requests_per_minute / 60.0,
                clock=self._clock,
            )
        return self._buckets[endpoint]


class _TokenBucket:
    def __init__(self, *, capacity: int, refill_rate: float, clock: Callable[[], float]):
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self.tokens = float(capacity)
        self._clock = clock
        self.last_update = clock()

    def consume(self, tokens: int = 1) -> bool:
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def available(self) -> float:
        self._refill()
        return self.tokens

    def time_until_available(self, tokens: int = 1) -> float:
        self._refill()
        if self.tokens >= tokens:
            return 0.0
        if self.refill_rate <= 0.0:
            return float("inf")
        return (tokens - self.tokens) / self.refill_rate

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self.last_update)
        self.last_update = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
