from __future__ import annotations

import pytest

from bunda.core.cache import CacheStats, MemoryCache, record_cache_stats


def _clock(monkeypatch, start: float = 1_000_000.0):
    now = {"t": start}
    monkeypatch.setattr("bunda.core.cache.time.time", lambda: now["t"])
    return now


def test_get_returns_value_until_ttl_elapses(monkeypatch):
    now = _clock(monkeypatch)
    cache = MemoryCache(default_ttl_seconds=60)
    cache.set("geocode", "Wetstraat 16, 1000 Brussel", {"lat": 50.84})

    now["t"] += 60
    assert cache.get("geocode", "Wetstraat 16, 1000 Brussel") == {"lat": 50.84}

    now["t"] += 1
    assert cache.get("geocode", "Wetstraat 16, 1000 Brussel") is None
    # Expired entries are evicted on read.
    assert len(cache) == 0
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.expired) == (1, 1, 1)


def test_namespaces_do_not_collide():
    cache = MemoryCache()
    cache.set("geocode", "k", 1)
    cache.set("reverse", "k", 2)
    assert cache.get("geocode", "k") == 1
    assert cache.get("reverse", "k") == 2


def test_per_entry_ttl_overrides_default(monkeypatch):
    now = _clock(monkeypatch)
    cache = MemoryCache(default_ttl_seconds=3600)
    cache.set("geocode", "short", "x", ttl_seconds=5)
    now["t"] += 6
    assert cache.get("geocode", "short") is None


def test_disabled_cache_stores_nothing():
    cache = MemoryCache(enabled=False)
    cache.set("geocode", "k", 1)
    assert cache.get("geocode", "k") is None
    assert len(cache) == 0
    assert cache.stats().as_dict() == {"hits": 0, "misses": 0, "expired": 0, "sets": 0}


def test_purge_expired_and_clear(monkeypatch):
    now = _clock(monkeypatch)
    cache = MemoryCache(default_ttl_seconds=10)
    cache.set("geocode", "old", 1)
    now["t"] += 5
    cache.set("geocode", "new", 2)
    now["t"] += 6

    assert cache.purge_expired() == 1
    assert len(cache) == 1

    cache.get("geocode", "new")
    cache.clear()
    assert len(cache) == 0
    # Counters survive a clear.
    assert cache.stats().hits == 1


def test_hit_rate():
    assert CacheStats().hit_rate == 0.0

    cache = MemoryCache()
    cache.set("geocode", "k", 1)
    for _ in range(3):
        cache.get("geocode", "k")
    cache.get("geocode", "missing")
    assert cache.stats().hit_rate == pytest.approx(0.75)


def test_record_cache_stats_captures_only_the_current_scope():
    cache = MemoryCache()
    cache.set("geocode", "k", 1)

    with record_cache_stats() as stats:
        cache.get("geocode", "k")
        cache.get("geocode", "nope")
    cache.get("geocode", "k")

    assert stats.as_dict() == {"hits": 1, "misses": 1, "expired": 0, "sets": 0}
    assert cache.stats().hits == 2
