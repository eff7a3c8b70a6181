"""
Result caching module for hintflow.

Provides a TTL-bounded in-memory cache with insertion-order eviction.
"""

from hintflow.cache.key import CacheKey, CacheKeyGenerator
from hintflow.cache.store import CacheConfig, CacheEntry, CacheStats, ResultCache

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheKey",
    "CacheKeyGenerator",
    "CacheStats",
    "ResultCache",
]
