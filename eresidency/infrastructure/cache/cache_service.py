"""
Cache service.

Two uses: resolving sessions written by the auth service, and the cache-aside
copy of the public verification projection.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Union
from datetime import timedelta

from eresidency.infrastructure.cache.redis_client import RedisClient, redis_client
from eresidency.core.logging import get_logger

logger = get_logger(__name__)

SESSION_PREFIX = "session"
VERIFY_PREFIX = "verify"


class CacheService:
    """Domain-level cache operations over the Redis client."""

    def __init__(self, client: RedisClient = redis_client):
        self.client = client

    async def get(self, key: str) -> Optional[Any]:
        return await self.client.get(key)

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[Union[int, timedelta]] = None
    ) -> bool:
        return await self.client.set(key, value, expire)

    async def delete(self, *keys: str) -> int:
        return await self.client.delete(*keys)

    def generate_key(self, prefix: str, *args) -> str:
        """``prefix:arg1:arg2``."""
        return ":".join([prefix, *(str(arg) for arg in args)])

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Session document ``{user_id, email, role}`` written by the auth service.

        Returns:
            The session, or None if it is missing, expired or malformed
        """
        session = await self.get(self.generate_key(SESSION_PREFIX, session_id))
        if not isinstance(session, dict) or not session.get("user_id"):
            return None
        return session

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        expire: Optional[Union[int, timedelta]] = None
    ) -> Any:
        """
        Cache-aside read. Errors raised by ``factory`` propagate and nothing is cached.

        Args:
            key: Cache key
            factory: Loads the value on a miss
            expire: Time to live

        Returns:
            Cached or freshly loaded value
        """
        cached_value = await self.get(key)
        if cached_value is not None:
            logger.debug(f"Cache hit for key: {key}")
            return cached_value

        new_value = await factory()
        await self.set(key, new_value, expire)
        return new_value

    async def get_verification(
        self,
        public_id: str,
        loader: Callable[[], Awaitable[Dict[str, Any]]],
        expire: Optional[Union[int, timedelta]] = None,
    ) -> Dict[str, Any]:
        return await self.get_or_set(self.generate_key(VERIFY_PREFIX, public_id), loader, expire)

    async def invalidate_verification(self, *public_ids: str) -> int:
        """Drop cached projections, e.g. after an application transition."""
        return await self.delete(
            *(self.generate_key(VERIFY_PREFIX, public_id) for public_id in public_ids if public_id)
        )


# Global cache service instance
cache_service = CacheService()
