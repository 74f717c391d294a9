"""Abstract cache interface."""

from abc import ABC, abstractmethod
from typing import Any


class CacheProvider(ABC):
    """Abstract base class for cache implementations."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Retrieve a cached value.

        Args:
            key: Cache key

        Returns:
            Cached value or None if miss/expired
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """
        Store a value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Optional TTL override
        """
        ...

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        """
        Remove specific entry from cache.

        Args:
            key: Cache key to invalidate
        """
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Clear all cached entries."""
        ...

    async def close(self) -> None:
        """Cleanup connections and resources."""

    async def __aenter__(self) -> "CacheProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - cleanup."""
        await self.close()
