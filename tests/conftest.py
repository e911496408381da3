import os
import sys
import pytest
import pytest_asyncio

# Ensure project root on path
sys.path.insert(0, os.getcwd())

import httpx

from locker.main import app
from locker.core.deps import get_redis as _get_redis_dep, get_locker as _get_locker_dep
from locker.coord.engine import RedisLocker
from locker.coord.mutex import RedisMutex


def _fast_mutex(redis, retry_count: int = 500) -> RedisMutex:
    # Short backoff so contended tests finish quickly
    return RedisMutex(redis, retry_count=retry_count, retry_delay_ms=1, retry_jitter_ms=2)


@pytest.fixture()
def fast_mutex():
    return _fast_mutex


@pytest.fixture()
def fake_server():
    try:
        from fakeredis import FakeServer
    except Exception as e:
        pytest.skip(f"fakeredis not available: {e}")
    return FakeServer()


@pytest_asyncio.fixture()
async def fake_redis(fake_server):
    from fakeredis.aioredis import FakeRedis

    r = FakeRedis(server=fake_server, decode_responses=True)
    await r.flushall()
    yield r
    await r.aclose()


@pytest_asyncio.fixture()
async def process_clients(fake_server):
    """Independent clients sharing one server, standing in for separate processes."""
    from fakeredis.aioredis import FakeRedis

    clients = [FakeRedis(server=fake_server, decode_responses=True) for _ in range(8)]
    yield clients
    for c in clients:
        await c.aclose()


@pytest.fixture()
def locker(fake_redis) -> RedisLocker:
    return RedisLocker(fake_redis, "test", mutex=_fast_mutex(fake_redis))


@pytest_asyncio.fixture()
async def async_client(fake_redis, locker):
    async def _override_get_redis():
        return fake_redis

    def _override_get_locker():
        return locker

    app.dependency_overrides[_get_redis_dep] = _override_get_redis
    app.dependency_overrides[_get_locker_dep] = _override_get_locker

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
