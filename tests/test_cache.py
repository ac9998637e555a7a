"""Tests for the bounded expiring LRU cache."""

from __future__ import annotations

import pytest

from app.cache import LRUCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_get_returns_stored_value_until_ttl_elapses() -> None:
    clock = FakeClock()
    cache: LRUCache[str] = LRUCache(max_size=4, ttl=10, clock=clock)

    cache.set("a", "alpha")
    clock.advance(9.9)
    assert cache.get("a") == "alpha"

    clock.advance(0.1)
    assert cache.get("a") is None
    assert cache.size() == 0


def test_eviction_removes_least_recently_used_entry() -> None:
    """Reading a key protects it from the next eviction."""

    cache: LRUCache[int] = LRUCache(max_size=2, ttl=60, clock=FakeClock())
    cache.set("first", 1)
    cache.set("second", 2)
    assert cache.get("first") == 1

    cache.set("third", 3)

    assert cache.keys() == ["first", "third"]
    assert cache.get("second") is None


def test_size_never_exceeds_capacity() -> None:
    cache: LRUCache[int] = LRUCache(max_size=3, ttl=60, clock=FakeClock())
    for index in range(10):
        cache.set(f"key-{index}", index)
        assert cache.size() <= 3
    assert cache.keys() == ["key-7", "key-8", "key-9"]


def test_overwrite_replaces_value_and_refreshes_expiry() -> None:
    clock = FakeClock()
    cache: LRUCache[str] = LRUCache(max_size=2, ttl=10, clock=clock)
    cache.set("k", "old")
    clock.advance(8)
    cache.set("k", "new")
    clock.advance(8)

    assert cache.get("k") == "new"
    assert cache.size() == 1


def test_has_does_not_refresh_recency() -> None:
    cache: LRUCache[int] = LRUCache(max_size=2, ttl=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.has("a")
    cache.set("c", 3)

    assert not cache.has("a")
    assert cache.has("b")
    assert cache.has("c")


def test_has_drops_expired_entries() -> None:
    clock = FakeClock()
    cache: LRUCache[int] = LRUCache(max_size=2, ttl=5, clock=clock)
    cache.set("a", 1)
    clock.advance(5)

    assert not cache.has("a")
    assert cache.keys() == []


def test_stats_track_hits_and_misses() -> None:
    cache: LRUCache[int] = LRUCache(max_size=2, ttl=60, clock=FakeClock())
    cache.set("a", 1)
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()

    assert stats["size"] == 1
    assert stats["maxSize"] == 2
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hitRate"] == 50.0

    cache.clear()
    assert cache.size() == 0


@pytest.mark.parametrize("max_size, ttl", [(0, 10), (1, -1)])
def test_invalid_bounds_are_rejected(max_size: int, ttl: float) -> None:
    with pytest.raises(ValueError):
        LRUCache(max_size=max_size, ttl=ttl)


def test_zero_ttl_entries_expire_immediately() -> None:
    cache: LRUCache[str] = LRUCache(max_size=2, ttl=0, clock=FakeClock())
    cache.set("a", "alpha")

    assert cache.get("a") is None


def test_peek_leaves_recency_and_counters_alone() -> None:
    cache: LRUCache[int] = LRUCache(max_size=2, ttl=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.peek("a") == 1
    assert cache.peek("missing") is None
    cache.set("c", 3)

    assert cache.keys() == ["b", "c"]
    assert cache.stats()["hits"] == 0
    assert cache.stats()["misses"] == 0
