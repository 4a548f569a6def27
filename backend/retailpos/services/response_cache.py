# Overview: In-process TTL cache for API responses with endpoint-pattern invalidation.

"""
API Response Cache

WHY: Catalog and sales listings are read far more often than they change.
A short-lived cache in front of GET handlers takes load off the database;
mutating requests invalidate every cached endpoint they could have affected.

DESIGN:
- One ResponseCache instance per app, installed in app.extensions
  (no module-level singleton) so it can be swapped for a shared store
- The map is guarded by a lock; Flask may serve requests on threads
- Staleness is bounded by the entry TTL; last writer wins per key
- Writes sweep expired entries at most once per sweep interval, so keys
  that never come back (one-off query strings) do not pile up
- Keys are derived from (endpoint, params, user_id); invalidation matches
  on the endpoint part only
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class CachePreset:
    ttl_seconds: int
    invalidate_on: tuple[str, ...] = ()


CACHE_PRESETS = {
    "products": CachePreset(ttl_seconds=10 * 60, invalidate_on=("/api/products",)),
    "users": CachePreset(ttl_seconds=5 * 60, invalidate_on=("/api/users", "/api/admin/users")),
    "categories": CachePreset(ttl_seconds=30 * 60, invalidate_on=("/api/categories", "/api/products/categories")),
    "sales": CachePreset(ttl_seconds=2 * 60, invalidate_on=("/api/sales", "/api/products")),
}


@dataclass
class _CacheEntry:
    endpoint: str
    data: Any
    stored_at: float
    expires_at: float


class ResponseCache:
    """Bounded-staleness map from request key to a cached response body."""

    def __init__(
        self,
        default_ttl_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 60,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _drop_expired(self, now: float) -> int:
        # Caller holds self._lock
        doomed = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in doomed:
            del self._entries[key]
        self._last_sweep = now
        return len(doomed)

    @staticmethod
    def make_key(endpoint: str, params: dict | None = None, user_id: int | None = None) -> str:
        return json.dumps(
            {"endpoint": endpoint, "params": params or {}, "user_id": user_id},
            sort_keys=True,
            default=str,
        )

    def get(self, endpoint: str, params: dict | None = None, user_id: int | None = None):
        """Return cached data, or None when missing or expired (expired entries are dropped)."""
        key = self.make_key(endpoint, params, user_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.data

    def set(
        self,
        endpoint: str,
        data,
        params: dict | None = None,
        user_id: int | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        key = self.make_key(endpoint, params, user_id)
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval_seconds:
                self._drop_expired(now)
            self._entries[key] = _CacheEntry(
                endpoint=endpoint,
                data=data,
                stored_at=now,
                expires_at=now + ttl,
            )

    def invalidate(self, pattern: str) -> int:
        """Drop every entry whose endpoint contains pattern. Returns count removed."""
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if pattern in entry.endpoint]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Drop expired entries. Returns count removed."""
        with self._lock:
            return self._drop_expired(self._clock())

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "endpoints": sorted({entry.endpoint for entry in self._entries.values()}),
            }
