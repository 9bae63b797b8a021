"""Redis caching service."""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from claim_rag.core.config import settings
from claim_rag.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheService:
    """Service for caching chunk embeddings between requests."""

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        """
        Initialize the cache service.

        Args:
            client: Pre-built Redis client, mainly for tests.
        """
        self.client: Optional[redis.Redis] = client
        self.ttl = settings.cache_ttl

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def connect(self) -> None:
        """
        Connect to Redis.

        Leaves the cache disabled when no redis_url is configured.

        Raises:
            CacheError: If Redis is configured but unreachable.
        """
        if not settings.redis_url:
            logger.info("Redis not configured, embedding cache disabled")
            return
        try:
            self.client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            self.client = None
            raise CacheError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.close()
            self.client = None

    async def ping(self) -> bool:
        if not self.client:
            return False
        return bool(await self.client.ping())

    async def get(self, key: str) -> Optional[str]:
        """
        Get a value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found.

        Raises:
            CacheError: If the lookup fails.
        """
        if not self.client:
            return None
        try:
            return await self.client.get(key)
        except Exception as e:
            raise CacheError(f"Failed to read cache: {str(e)}") from e

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """
        Set a value in cache.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time to live in seconds.

        Raises:
            CacheError: If the write fails.
        """
        if not self.client:
            return
        try:
            await self.client.setex(key, ttl or self.ttl, value)
        except Exception as e:
            raise CacheError(f"Failed to set cache: {str(e)}") from e

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Get a JSON value from cache.

        Args:
            key: Cache key.

        Returns:
            Parsed JSON value or None if not found or unparseable.
        """
        value = await self.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                logger.warning(f"Discarding unparseable cache entry {key}")
                return None
        return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set a JSON value in cache.

        Args:
            key: Cache key.
            value: JSON-serializable value to cache.
            ttl: Time to live in seconds.
        """
        await self.set(key, json.dumps(value), ttl)
