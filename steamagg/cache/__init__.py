"""Cache implementations."""

from steamagg.cache.base import CacheProvider
from steamagg.cache.memory_cache import MemoryCache

__all__ = ["CacheProvider", "MemoryCache"]
