"""
Redis Backend
Stores each partition as one JSON string under its own Redis key
"""
import logging
from typing import Optional

import redis.asyncio as redis

from franchise_crm.domain.interfaces.kv_backend import KeyValueBackend

logger = logging.getLogger(__name__)


class RedisBackend(KeyValueBackend):
    """
    Redis-backed partition storage.

    A partition write is a single SET, so concurrent readers see either
    the old or the new array, never a mix.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", redis_client=None):
        """
        Initialize backend.

        Args:
            redis_url: Connection URL, used when no client is supplied
            redis_client: Optional pre-configured Redis client
        """
        self._redis_url = redis_url
        self._redis = redis_client

    async def initialize(self) -> None:
        """Connect to Redis if a client was not provided."""
        if self._redis is not None:
            return

        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True
        )
        await self._redis.ping()
        logger.info(f"RedisBackend connected to Redis: {self._redis_url}")

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("RedisBackend connection closed")

    @property
    def name(self) -> str:
        return "redis"
