"""Reusable in-memory rate limiter."""

import time
from collections.abc import Callable
from dataclasses import dataclass

from citewatch.errors import RateLimitError


@dataclass(slots=True)
class RateLimitBucket:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window admission control keyed by caller identity.

    Accepts or rejects; never queues or delays. Buckets live in process
    memory, so a multi-process deployment needs a shared store with atomic
    increments (e.g. Redis INCR + EXPIRE) instead.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._buckets: dict[str, RateLimitBucket] = {}

    def check(self, identifier: str, limit: int, window_seconds: float) -> None:
        """Admit one request for ``identifier`` or raise RateLimitError."""
        now = self._clock()
        bucket = self._buckets.get(identifier)

        if bucket is None or now > bucket.reset_at:
            self._buckets[identifier] = RateLimitBucket(count=1, reset_at=now + window_seconds)
            return

        if bucket.count >= limit:
            raise RateLimitError(
                f"Rate limit exceeded. Max {limit} requests per {window_seconds:g}s"
            )

        bucket.count += 1

    def is_allowed(self, identifier: str, limit: int, window_seconds: float) -> bool:
        """Same as check() but returns False instead of raising."""
        try:
            self.check(identifier, limit, window_seconds)
        except RateLimitError:
            return False
        return True

    def remaining(self, identifier: str, limit: int) -> int:
        bucket = self._buckets.get(identifier)
        if bucket is None or self._clock() > bucket.reset_at:
            return limit
        return max(limit - bucket.count, 0)

    def reset(self, identifier: str) -> None:
        """Clear rate limit state for an identifier."""
        self._buckets.pop(identifier, None)

    def clear(self) -> None:
        self._buckets.clear()
