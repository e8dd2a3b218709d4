"""Retry with exponential backoff for fallible async operations."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from citewatch.errors import RetryDeadlineExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Run an operation, retrying failures with capped exponential backoff.

    The delay before retry ``n`` (0-based) is ``min(base_delay * 2**n, max_delay)``,
    scaled down by a random factor in ``[1 - jitter, 1]`` when ``jitter`` is set.
    ``deadline`` bounds the whole run, not each attempt.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        jitter: float = 0.0,
        deadline: float | None = None,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be between 0 and 1")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.deadline = deadline
        self.retry_on = retry_on
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(1.0 - self.jitter, 1.0)
        return delay

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        started = loop.time()

        for attempt in range(self.max_retries + 1):
            remaining = None
            if self.deadline is not None:
                remaining = self.deadline - (loop.time() - started)
                if remaining <= 0:
                    raise RetryDeadlineExceeded(
                        f"Retry deadline of {self.deadline:g}s exceeded"
                    )

            try:
                return await self._attempt(operation, remaining, attempt)
            except RetryDeadlineExceeded:
                raise
            except self.retry_on as exc:
                if attempt == self.max_retries:
                    raise

                delay = self.backoff_delay(attempt)
                if self.deadline is not None:
                    elapsed = loop.time() - started
                    if elapsed + delay >= self.deadline:
                        logger.warning(
                            "Giving up after attempt %d: next retry in %.2fs would pass the deadline",
                            attempt + 1,
                            delay,
                        )
                        raise

                logger.info(
                    "Attempt %d/%d failed (%s); retrying in %.2fs",
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                    delay,
                )
                await self._sleep(delay)

        raise AssertionError("unreachable")

    async def _attempt(
        self,
        operation: Callable[[], Awaitable[T]],
        remaining: float | None,
        attempt: int,
    ) -> T:
        if remaining is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=remaining)
        except asyncio.TimeoutError as exc:
            raise RetryDeadlineExceeded(
                f"Retry deadline of {self.deadline:g}s exceeded after {attempt + 1} attempt(s)"
            ) from exc
