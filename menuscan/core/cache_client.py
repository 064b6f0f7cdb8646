"""
Redis cache client for the menu scan backend.

Optional shared store behind the dish image cache. Every operation degrades
to a miss (or a no-op) when Redis is unreachable, so the in-process cache
keeps working on its own.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from redis import asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from menuscan.config.settings import get_settings


class CacheClient:
    """
    Redis cache client with connection management and error handling.

    Connection failures are counted; after ``max_retries`` consecutive
    failures the client stops trying and reports every lookup as a miss.
    """

    def __init__(self, redis_url: Optional[str] = None, max_retries: int = 3):
        """
        Initialize the cache client.

        Args:
            redis_url: Redis connection URL (optional, uses settings if not provided)
            max_retries: Consecutive connection failures before giving up
        """
        self.redis_url = redis_url or get_settings().redis.url
        self.redis_client: Optional[Redis] = None
        self.logger = logging.getLogger(__name__)
        self._connection_lock = asyncio.Lock()
        self._is_connected = False
        self._connection_retries = 0
        self._max_retries = max_retries

    async def connect(self) -> bool:
        """
        Establish connection to Redis server.

        Returns:
            True if connection successful, False otherwise
        """
        if not self.redis_url:
            self.logger.info("Redis not configured, skipping connection")
            return False

        async with self._connection_lock:
            if self._is_connected and self.redis_client:
                return True

            try:
                self.logger.info("Connecting to Redis", extra={'redis_url': self.redis_url})
                self.redis_client = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=get_settings().redis.socket_timeout,
                    socket_connect_timeout=5.0,
                    retry_on_timeout=True,
                    health_check_interval=30
                )
                await self.redis_client.ping()
                self._is_connected = True
                self._connection_retries = 0
                self.logger.info("Successfully connected to Redis")
                return True

            except (RedisError, OSError) as e:
                self._connection_retries += 1
                self.logger.error(
                    f"Failed to connect to Redis (attempt {self._connection_retries}): {str(e)}"
                )
                await self._drop_client()
                return False

    async def disconnect(self) -> None:
        """Disconnect from Redis server."""
        async with self._connection_lock:
            if self.redis_client:
                try:
                    await self.redis_client.aclose()
                    self.logger.info("Disconnected from Redis")
                except (RedisError, OSError) as e:
                    self.logger.warning(f"Error during Redis disconnect: {str(e)}")
                finally:
                    self.redis_client = None
                    self._is_connected = False

    async def get(self, key: str) -> Optional[str]:
        """
        Get value from cache.

        Returns:
            Cached value as string or None if not found/error
        """
        if not await self._ensure_connection():
            return None

        try:
            value = await self.redis_client.get(key)
            self.logger.debug(f"Cache {'hit' if value else 'miss'} for key: {key}")
            return value

        except (RedisError, OSError) as e:
            self.logger.warning(f"Error getting cache key '{key}': {str(e)}")
            await self._handle_connection_error()
            return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        """
        Set value in cache, with an expiry when ``ttl_seconds`` is given.

        Returns:
            True if successful, False otherwise
        """
        if not await self._ensure_connection():
            return False

        try:
            if ttl_seconds:
                result = await self.redis_client.setex(key, ttl_seconds, value)
            else:
                result = await self.redis_client.set(key, value)
            return bool(result)

        except (RedisError, OSError) as e:
            self.logger.warning(f"Error setting cache key '{key}': {str(e)}")
            await self._handle_connection_error()
            return False

    async def delete(self, key: str) -> bool:
        if not await self._ensure_connection():
            return False

        try:
            result = await self.redis_client.delete(key)
            return result > 0

        except (RedisError, OSError) as e:
            self.logger.warning(f"Error deleting cache key '{key}': {str(e)}")
            await self._handle_connection_error()
            return False

    async def ping(self) -> bool:
        """Ping Redis server to check connectivity."""
        if not await self._ensure_connection():
            return False

        try:
            return await self.redis_client.ping() is True
        except (RedisError, OSError) as e:
            self.logger.warning(f"Redis ping failed: {str(e)}")
            await self._handle_connection_error()
            return False

    async def get_info(self) -> Dict[str, Any]:
        """Connection summary for the health endpoint."""
        return {
            "connected": self.is_connected,
            "connection_retries": self._connection_retries,
        }

    async def _ensure_connection(self) -> bool:
        if self._is_connected and self.redis_client:
            return True

        if self._connection_retries >= self._max_retries:
            return False

        return await self.connect()

    async def _handle_connection_error(self) -> None:
        """Mark the connection as failed so the next call reconnects."""
        self._is_connected = False
        await self._drop_client()

    async def _drop_client(self) -> None:
        if self.redis_client:
            try:
                await self.redis_client.aclose()
            except (RedisError, OSError) as e:
                self.logger.debug(f"Ignoring error while closing Redis client: {e}")
            self.redis_client = None

    @property
    def is_connected(self) -> bool:
        """Check if client is connected to Redis."""
        return self._is_connected and self.redis_client is not None
