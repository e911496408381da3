import pytest
from prometheus_client import REGISTRY

from locker.core.config import Settings
from locker.coord.engine import RedisLocker
from locker.coord.mutex import DEFAULT_LEASE_MS
from locker.coord.schemas import LockState


def _count(operation: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "locker_operations_total", {"operation": operation, "outcome": outcome}
    )
    return value or 0.0


@pytest.mark.asyncio
async def test_public_surface_round_trip(locker):
    credential = await locker.lock(["a", "b"], 10)
    assert await locker.lock("a", 10) is LockState.ALREADY_LOCKED
    assert await locker.list_locked() == {"a", "b"}
    assert await locker.unlock(["a", "b"], credential + 1) is False
    assert await locker.unlock(["a", "b"], credential) is True
    assert await locker.list_locked() == set()


@pytest.mark.asyncio
async def test_limit_through_facade(locker):
    results = [await locker.limit("x", 3, 60, 30) for _ in range(5)]
    assert results == [0, 1, 2, LockState.NEWLY_LOCKED, LockState.ALREADY_LOCKED]
    # escalation shows up as a regular lock record
    assert "x" in await locker.list_locked()


@pytest.mark.asyncio
async def test_namespaces_coexist_on_one_client(fake_redis):
    blue = RedisLocker(fake_redis, "blue")
    green = RedisLocker(fake_redis, "green")
    assert isinstance(await blue.lock(["shared"], 10), int)
    assert isinstance(await green.lock(["shared"], 10), int)
    assert await blue.limit("shared", 1, 60, 30) is LockState.ALREADY_LOCKED
    await green.unlock(["shared"])
    assert await green.limit("shared", 1, 60, 30) == 0
    assert await blue.list_locked() == {"shared"}


@pytest.mark.asyncio
async def test_operations_are_counted(locker):
    before_ok = _count("lock", "acquired")
    before_locked = _count("lock", "already_locked")
    await locker.lock(["m"], 10)
    await locker.lock(["m"], 10)
    assert _count("lock", "acquired") == before_ok + 1
    assert _count("lock", "already_locked") == before_locked + 1


@pytest.mark.asyncio
async def test_failed_operation_counted_as_error(locker):
    before = _count("lock", "error")
    with pytest.raises(ValueError):
        await locker.lock([], 10)
    assert _count("lock", "error") == before + 1


@pytest.mark.asyncio
async def test_from_settings_wires_mutex(fake_redis):
    s = Settings(
        LOCKER_NAMESPACE="cfg",
        MUTEX_LEASE_MS=1234,
        MUTEX_RETRY_COUNT=7,
        MUTEX_RETRY_DELAY_MS=11,
        MUTEX_RETRY_JITTER_MS=13,
    )
    locker = RedisLocker.from_settings(fake_redis, s)
    assert locker.namespace == "cfg"
    assert locker.limiter.lease_ms == 1234
    assert locker.limiter.mutex.retry_count == 7
    assert locker.limiter.mutex.retry_delay_ms == 11
    assert locker.limiter.mutex.retry_jitter_ms == 13


@pytest.mark.asyncio
async def test_default_lease_when_not_given(fake_redis):
    assert RedisLocker(fake_redis, "dflt").limiter.lease_ms == DEFAULT_LEASE_MS
    assert RedisLocker(fake_redis, "dflt", lease_ms=None).limiter.lease_ms == 5000
