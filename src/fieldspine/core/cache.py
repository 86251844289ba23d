"""
Read-through cache abstraction for entity rows.

The entity manager caches storage rows (plain dicts) under keys of the
form ``entity:{table}:{id}``.  Every write path deletes the key it
touched; the cache never has to understand entities.

Architecture:
    ::

        CacheBackend (Protocol)
        └── InMemoryCache  -- single-process, bounded LRU with TTL

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             delete(key)
             exists(key) → bool
             clear()

Examples:
    >>> from fieldspine.core.cache import InMemoryCache
    >>> cache = InMemoryCache(max_size=1000, default_ttl_seconds=3600)
    >>> cache.set("entity:nodes:1", {"id": 1, "title": "Hello"})
    >>> cache.get("entity:nodes:1")
    {'id': 1, 'title': 'Hello'}

Tags:
    cache, in-memory, ttl, lru, fieldspine
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CacheBackend(Protocol):
    """Cache contract used by :class:`~fieldspine.entity.manager.EntityManager`."""

    def get(self, key: str) -> Any | None:
        """Return the cached value or ``None`` on a miss."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store *value* under *key*."""
        ...

    def delete(self, key: str) -> None:
        """Remove *key* if present."""
        ...

    def exists(self, key: str) -> bool:
        """Whether *key* is present and not expired."""
        ...

    def clear(self) -> None:
        """Remove every key."""
        ...


class InMemoryCache:
    """Bounded in-memory cache with TTL support.

    Uses LRU eviction when ``max_size`` is reached.  Expired entries are
    dropped lazily on access.

    Example:
        cache = InMemoryCache(max_size=500, default_ttl_seconds=1800)
        cache.set("entity:nodes:7", row, ttl_seconds=60)
    """

    def __init__(
        self,
        *,
        max_size: int = 10_000,
        default_ttl_seconds: int | None = 3600,
    ):
        self._store: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() > expires_at:
            self.delete(key)
            return None
        self._store.move_to_end(key)
        return value

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = (time.monotonic() + ttl) if ttl else None

        if key not in self._store and len(self._store) >= self._max_size:
            self._store.popitem(last=False)

        self._store[key] = (value, expires_at)
        self._store.move_to_end(key)

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.get(key) is not None

    def clear(self) -> None:
        """Remove all keys."""
        self._store.clear()

    def size(self) -> int:
        """Return current number of cached keys."""
        return len(self._store)


__all__ = [
    "CacheBackend",
    "InMemoryCache",
]
