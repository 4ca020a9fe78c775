"""
Cache Module
============

Injectable response caches.

Usage:
    from shared.cache import InMemoryCache, get_response_cache

    cache = InMemoryCache(capacity=1024)
    await cache.set("key", {"isValid": True})

    # Backend chosen by CACHE_BACKEND (memory | redis)
    cache = get_response_cache()
"""

from shared.cache.base import InMemoryCache, ResponseCache
from shared.cache.redis import RedisCache
from shared.config import CacheBackend, settings


def get_response_cache() -> ResponseCache:
    """
    Build a cache for the configured backend.

    Each call returns a new cache; services that should share entries
    must be handed the same instance.
    """
    if settings.cache.backend == CacheBackend.REDIS:
        return RedisCache()
    return InMemoryCache(capacity=settings.cache.capacity)


__all__ = [
    "ResponseCache",
    "InMemoryCache",
    "RedisCache",
    "get_response_cache",
]
