"""In-memory LRU cache with TTL for slowly changing reads (institution lists)."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable


@dataclasses.dataclass
class CacheEntry:
    """Cached value with TTL tracking."""

    key: str
    value: Any
    created_at: float = dataclasses.field(default_factory=time.time)
    ttl_seconds: int = 0
    hit_count: int = 0

    @property
    def is_expired(self) -> bool:
        """Entries with ``ttl_seconds <= 0`` never expire."""
        if self.ttl_seconds <= 0:
            return False
        return (time.time() - self.created_at) >= self.ttl_seconds


class MemoryCache:
    """OrderedDict-based LRU cache with TTL expiry.

    Guarded by an ``asyncio.Lock``: safe for concurrent coroutine access.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self._max_entries = max_entries
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        """Value for *key*, or None on miss or TTL expiry."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired:
                del self._store[key]
                return None
            entry.hit_count += 1
            self._store.move_to_end(key)
            return entry.value

    async def put(self, key: str, value: Any, *, ttl_seconds: int = 0) -> None:
        """Store a value; evicts least recently used entries past capacity."""
        async with self._lock:
            self._store.pop(key, None)
            self._store[key] = CacheEntry(key=key, value=value, ttl_seconds=ttl_seconds)
            while len(self._store) > self._max_entries:
                self._store.popitem(last=False)

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def invalidate_prefix(self, prefix: str) -> None:
        async with self._lock:
            for key in [k for k in self._store if k.startswith(prefix)]:
                del self._store[key]

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


def cache_key(namespace: str, *args: Any, **kwargs: Any) -> str:
    """Stable key from a namespace and call arguments."""
    payload = json.dumps([args, kwargs], sort_keys=True, default=str)
    return f"{namespace}:{payload}"


async def cached_call(
    cache: MemoryCache | None,
    key: str,
    loader: Callable[[], Awaitable[Any]],
    ttl_seconds: int,
) -> Any:
    """Return the cached value for *key* or load, store and return it.

    ``None`` results are not cached. Without a cache the loader always runs.
    """
    if cache is None:
        return await loader()
    hit = await cache.get(key)
    if hit is not None:
        return hit
    value = await loader()
    if value is not None:
        await cache.put(key, value, ttl_seconds=ttl_seconds)
    return value
