"""Bounded in-memory TTL cache.

Eviction is FIFO by insertion order, not LRU: when the cache is full and no
entry has expired, the entry that was set longest ago is dropped even if it
was read a moment earlier. Re-setting a key moves it to the back of the queue.

Process-local only. A multi-worker deployment needs a shared store (e.g.
Redis) behind the same get/set/delete interface.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class CacheEntry:
    data: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class TTLCache:
    """Key/value store with per-entry time-to-live and a size ceiling."""

    def __init__(
        self,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        # Dict order is insertion order; drop the old slot so a refresh re-queues.
        self._entries.pop(key, None)

        if len(self._entries) >= self.max_size:
            self.cleanup()

        if len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

        self._entries[key] = CacheEntry(data=value, created_at=self._clock(), ttl=ttl)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return entry.data

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        return len(self._entries)


def make_cache_key(*parts: str | int) -> str:
    """Join key parts with ':' (e.g. ``serp:google:us:en:best crm``)."""
    return ":".join(str(part) for part in parts)
