"""
Redis client shared by the session lookup and the verification projection cache.

Values are stored as JSON. Redis is an accelerator here, never a source of truth:
an unreachable server is logged and reported as a miss.
"""

import json
import redis.asyncio as redis
from redis.exceptions import RedisError
from typing import Any, Optional, Union
from datetime import timedelta

from eresidency.core.config import settings
from eresidency.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Lazily connected Redis client with JSON values."""

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """
        Open the connection pool and ping the server.

        Raises:
            RedisError: If the server cannot be reached
        """
        pool = redis.ConnectionPool.from_url(
            settings.REDIS_URI,
            db=settings.REDIS_DB,
            decode_responses=True,
            max_connections=20,
            retry_on_timeout=True,
        )
        client = redis.Redis(connection_pool=pool)
        try:
            await client.ping()
        except (RedisError, OSError):
            await client.aclose()
            raise
        self._client = client
        logger.info(f"Connected to Redis db {settings.REDIS_DB}")

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    async def _available(self) -> bool:
        if self._client:
            return True
        try:
            await self.connect()
        except (RedisError, OSError) as e:
            logger.warning(f"Redis unavailable, serving without cache: {e}")
            return False
        return True

    async def get(self, key: str) -> Optional[Any]:
        """
        Returns:
            Decoded value, or None on a miss or when Redis is unavailable
        """
        if not await self._available():
            return None
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.error(f"Redis GET {key} failed: {e}")
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        if not await self._available():
            return False
        try:
            return bool(await self._client.set(key, json.dumps(value, default=str), ex=expire))
        except RedisError as e:
            logger.error(f"Redis SET {key} failed: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        if not keys or not await self._available():
            return 0
        try:
            return await self._client.delete(*keys)
        except RedisError as e:
            logger.error(f"Redis DEL {keys} failed: {e}")
            return 0


# Global Redis client instance
redis_client = RedisClient()
