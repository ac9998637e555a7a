"""Bounded in-memory cache with per-entry expiry and LRU eviction."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value together with its insertion and expiry timestamps."""

    value: T
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class LRUCache(Generic[T]):
    """Key/value store bounded by ``max_size`` whose entries live for ``ttl`` seconds.

    Expiry is checked lazily whenever a key is read, so no background task is
    needed. Recency is tracked through the insertion order of an
    ``OrderedDict``: successful ``get`` and ``set`` calls move the key to the
    end and eviction pops from the front.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: float = 30 * 60,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if ttl < 0:
            raise ValueError("ttl may not be negative")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry[T]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> T | None:
        """Return the cached value or ``None`` when missing or expired."""

        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self._clock()):
            self.delete(key)
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    def set(self, key: Hashable, value: T) -> None:
        """Store ``value`` as the most recently used entry."""

        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        now = self._clock()
        self._entries[key] = CacheEntry(value=value, inserted_at=now, expires_at=now + self.ttl)

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def peek(self, key: Hashable) -> T | None:
        """Return a live value without touching recency or hit counters."""

        if not self.has(key):
            return None
        return self._entries[key].value

    def has(self, key: Hashable) -> bool:
        """Return whether a live entry exists without refreshing its recency."""

        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            self.delete(key)
            return False
        return True

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> list[Hashable]:
        return list(self._entries.keys())

    def stats(self) -> dict[str, Any]:
        """Return size and hit-rate information for diagnostics."""

        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "maxSize": self.max_size,
            "ttl": self.ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hitRate": round(self._hits / lookups * 100, 1) if lookups else 0.0,
        }
