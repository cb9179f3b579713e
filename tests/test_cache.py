import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from eresidency.infrastructure.cache.cache_service import CacheService
from eresidency.infrastructure.cache.redis_client import RedisClient

pytestmark = pytest.mark.anyio


class DictClient:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, expire=None):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


async def test_verification_projection_is_cached_until_invalidated():
    client = DictClient()
    cache = CacheService(client)
    loads = []

    async def loader():
        loads.append(1)
        return {"status": "approved"}

    assert await cache.get_verification("app-1", loader, 60) == {"status": "approved"}
    assert await cache.get_verification("app-1", loader, 60) == {"status": "approved"}
    assert len(loads) == 1

    assert await cache.invalidate_verification("app-1", "user-1") == 1
    await cache.get_verification("app-1", loader, 60)
    assert len(loads) == 2


async def test_loader_errors_are_not_cached():
    client = DictClient()
    cache = CacheService(client)

    async def failing():
        raise LookupError("gone")

    with pytest.raises(LookupError):
        await cache.get_verification("app-2", failing)
    assert client.store == {}


async def test_malformed_sessions_are_ignored():
    client = DictClient()
    cache = CacheService(client)
    client.store["session:ok"] = {"user_id": "u1", "role": "reviewer"}
    client.store["session:bad"] = "not-a-document"
    client.store["session:anonymous"] = {"role": "user"}

    assert (await cache.get_session("ok"))["role"] == "reviewer"
    assert await cache.get_session("bad") is None
    assert await cache.get_session("anonymous") is None
    assert await cache.get_session("missing") is None


async def test_unreachable_redis_reads_as_a_miss(monkeypatch):
    client = RedisClient()

    async def refuse():
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(client, "connect", refuse)

    assert await client.get("verify:x") is None
    assert await client.set("verify:x", {"a": 1}) is False
    assert await client.delete("verify:x") == 0
