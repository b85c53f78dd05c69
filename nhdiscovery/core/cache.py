"""Bounded in-memory TTL cache for upstream responses."""

import time
from collections import OrderedDict
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """In-memory cache with time-to-live expiration and a size bound.

    Entries are evicted least-recently-used first once max_entries is reached.
    Values are stored as-is, so callers must treat them as immutable snapshots.

    Usage:
        cache = TTLCache[dict](max_entries=200, ttl_seconds=600)

        payload = await cache.get_or_fetch(("search", query, page, per_page, sort), fetch)
    """

    def __init__(
        self,
        max_entries: int = 200,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl = ttl_seconds
        self._clock = clock
        self._cache: OrderedDict[Hashable, tuple[float, T]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: Hashable) -> T | None:
        """Get a value from cache, returning None if expired or missing."""
        entry = self._cache.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self._clock() - stored_at > self.ttl:
            del self._cache[key]
            return None

        self._cache.move_to_end(key)
        return value

    def set(self, key: Hashable, value: T) -> None:
        """Store a value, evicting the oldest entries past the size bound."""
        self._cache[key] = (self._clock(), value)
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)

    async def get_or_fetch(self, key: Hashable, fetch_func: Callable[[], Awaitable[T]]) -> T:
        """Get from cache or fetch using the provided async function.

        Exceptions from fetch_func propagate and nothing is stored.
        """
        value = self.get(key)
        if value is not None:
            return value

        value = await fetch_func()
        self.set(key, value)
        return value
