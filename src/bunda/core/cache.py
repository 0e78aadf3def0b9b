"""
Simple in-process TTL cache.

This cache is intentionally lightweight:
- Values live in a dict owned by the `MemoryCache` instance (one per process in
  the API, a fresh one per test).
- Keys are `(namespace, key)` pairs, so forward and reverse geocoding never collide.
- TTL is enforced on read: an expired entry is evicted and reported as a miss.
- Entries are replaced wholesale on write and never mutated in place, so
  concurrent handlers can share one instance without a lock.

It is used by the geocoding gateway to bound the number of calls made to the
external provider.
"""

from __future__ import annotations

import contextvars
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntry:
    """Stored envelope."""

    created_at_unix: int
    ttl_seconds: int
    value: Any


@dataclass
class CacheStats:
    """Cache usage counters (best-effort)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    sets: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": int(self.hits),
            "misses": int(self.misses),
            "expired": int(self.expired),
            "sets": int(self.sets),
        }


_cache_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar(
    "bunda_cache_stats", default=None
)


@contextmanager
def record_cache_stats() -> CacheStats:
    """Capture cache stats within the current context (thread/task-safe)."""

    stats = CacheStats()
    token = _cache_stats_var.set(stats)
    try:
        yield stats
    finally:
        _cache_stats_var.reset(token)


class MemoryCache:
    """A dict-backed cache keyed by (namespace, key)."""

    def __init__(self, enabled: bool = True, default_ttl_seconds: int = 604800):
        self._enabled = enabled
        self._default_ttl_seconds = default_ttl_seconds
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._totals = CacheStats()

    def _bump(self, field: str) -> None:
        setattr(self._totals, field, getattr(self._totals, field) + 1)
        st = _cache_stats_var.get()
        if st is not None:
            setattr(st, field, getattr(st, field) + 1)

    def _is_expired(self, entry: CacheEntry, now: int) -> bool:
        return now - entry.created_at_unix > entry.ttl_seconds

    def get(self, namespace: str, key: str) -> Any | None:
        """Return a cached value if present and not expired; otherwise None."""
        if not self._enabled:
            return None

        entry = self._entries.get((namespace, key))
        if entry is None:
            self._bump("misses")
            return None

        if self._is_expired(entry, int(time.time())):
            # pop() rather than del: a concurrent reader may have evicted it already.
            self._entries.pop((namespace, key), None)
            self._bump("misses")
            self._bump("expired")
            return None

        self._bump("hits")
        return entry.value

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self._enabled:
            return None

        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl_seconds
        self._entries[(namespace, key)] = CacheEntry(
            created_at_unix=int(time.time()),
            ttl_seconds=int(ttl),
            value=value,
        )
        self._bump("sets")

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = int(time.time())
        stale = [k for k, e in list(self._entries.items()) if self._is_expired(e, now)]
        for k in stale:
            self._entries.pop(k, None)
        return len(stale)

    def clear(self) -> None:
        """Remove every entry. Hit/miss counters are kept."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        """Return a snapshot of the lifetime counters."""
        return CacheStats(**self._totals.as_dict())
