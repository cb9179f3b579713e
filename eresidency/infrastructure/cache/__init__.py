"""
Redis cache for sessions and the public verification projection.
"""

from .redis_client import RedisClient, redis_client
from .cache_service import CacheService, cache_service

__all__ = ["RedisClient", "redis_client", "CacheService", "cache_service"]
