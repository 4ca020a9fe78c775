"""
Redis Cache
===========

Redis-backed response cache for deployments where several processes
share verification and credential lookups.

Version: 0.1.0
"""

import json
from typing import Any

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


class RedisCache:
    """
    Async Redis cache with key namespacing and optional TTL.

    Values are stored JSON-encoded. Without a TTL entries never expire.
    """

    def __init__(
        self,
        client: Redis | None = None,  # type: ignore[type-arg]
        namespace: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self._client = client
        self._namespace = namespace if namespace is not None else settings.cache.namespace
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache.ttl_seconds

    def _get_client(self) -> Redis:  # type: ignore[type-arg]
        if self._client is None:
            self._client = aioredis.from_url(
                settings.redis.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            logger.info("redis_cache_client_created", host=settings.redis.host)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}" if self._namespace else key

    async def get(self, key: str) -> Any | None:
        value = await self._get_client().get(self._key(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        client = self._get_client()
        if self._ttl_seconds:
            await client.setex(self._key(key), self._ttl_seconds, payload)
        else:
            await client.set(self._key(key), payload)

    async def delete(self, key: str) -> bool:
        return await self._get_client().delete(self._key(key)) > 0

    async def close(self) -> None:
        """Close the client and release all connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_cache_client_closed")
