# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Redis cache wrapper used to remember delivered billing payloads."""

import json
import logging
from datetime import timedelta
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Raised when cache operations are misused."""

    pass


class RedisCache:
    """
    Redis key/value wrapper with TTL support and graceful degradation.

    Values are JSON encoded. When Redis is unreachable every read misses and
    every write reports False, so callers can fall back to local state.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", default_ttl: int = 86400):
        """
        Initialize the cache wrapper.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            default_ttl: Default time-to-live in seconds for stored keys

        Raises:
            CacheError: If the Redis URL is empty
        """
        if not redis_url:
            raise CacheError("redis_url cannot be empty")

        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self._client: Optional[redis.Redis] = None
        self._connected = False

    @classmethod
    async def create(
        cls, redis_url: str = "redis://localhost:6379/0", default_ttl: int = 86400
    ) -> "RedisCache":
        """Create a cache and try to connect to Redis."""
        cache = cls(redis_url, default_ttl)
        await cache._connect()
        return cache

    async def _connect(self) -> None:
        """Connect and ping. Logs failures instead of raising."""
        try:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                health_check_interval=30,
            )
            await self._client.ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self.redis_url}")
        except (RedisConnectionError, RedisError) as e:
            self._connected = False
            logger.warning(f"Failed to connect to Redis: {str(e)}. Cache will be unavailable.")

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    async def is_connected(self) -> bool:
        if not self._connected or self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except (RedisConnectionError, RedisError):
            self._connected = False
            return False

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a value with a TTL.

        Returns:
            True if stored, False if the cache is unavailable

        Raises:
            CacheError: If key is empty or value cannot be serialized
        """
        if not key:
            raise CacheError("key cannot be empty")
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise CacheError(f"Cannot serialize value for key {key}: {str(e)}") from e

        if not self._connected or self._client is None:
            logger.debug(f"Cache set skipped (unavailable): {key}")
            return False

        ttl = self.default_ttl if ttl is None else ttl
        try:
            await self._client.setex(key, timedelta(seconds=ttl), serialized)
            return True
        except (RedisConnectionError, RedisError) as e:
            self._connected = False
            logger.warning(f"Cache set failed for {key}: {str(e)}")
            return False

    async def exists(self, key: str) -> bool:
        if not key:
            raise CacheError("key cannot be empty")
        if not self._connected or self._client is None:
            return False
        try:
            return await self._client.exists(key) > 0
        except (RedisConnectionError, RedisError) as e:
            self._connected = False
            logger.warning(f"Cache exists check failed for {key}: {str(e)}")
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis connection closed")
