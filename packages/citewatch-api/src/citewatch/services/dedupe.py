"""Coalesce concurrent calls that share an operation key."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


class RequestDeduplicator:
    """Share one in-flight task between all callers of the same key.

    The entry is dropped as soon as the task settles, whatever the outcome,
    so the next call after completion starts fresh work.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Future[Any]] = {}

    async def dedupe(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(operation())
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        # A waiter being cancelled must not cancel the work other callers share.
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Future[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)
