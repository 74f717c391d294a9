"""In-process TTL cache."""

import time
from typing import Any, Callable

from steamagg.cache.base import CacheProvider


class MemoryCache(CacheProvider):
    """
    Process-local key -> (value, expiry) map.

    Expiry is checked lazily on read; nothing is evicted in the background.

    Example:
        cache = MemoryCache(default_ttl=60)
        await cache.set("snapshot:76561197960287930", snapshot)
        hit = await cache.get("snapshot:76561197960287930")
    """

    def __init__(
        self,
        default_ttl: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize memory cache.

        Args:
            default_ttl: Default TTL in seconds
            clock: Monotonic time source, injectable for tests
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    async def get(self, key: str) -> Any | None:
        """Return the live value for key, None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store value under key until now + ttl."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        self._entries[key] = (value, self._clock() + ttl)

    async def invalidate(self, key: str) -> None:
        """Remove cached value for key."""
        self._entries.pop(key, None)

    async def clear(self) -> None:
        """Clear all cached data."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
