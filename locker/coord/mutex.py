from __future__ import annotations

import asyncio
import random
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from redis.asyncio import Redis

from locker.core.logging import get_logger
from locker.observability.metrics import MUTEX_TIMEOUTS_TOTAL, MUTEX_WAIT_MS

log = get_logger("coord.mutex")

DEFAULT_LEASE_MS = 5000

# compare-and-delete in one round trip
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


class MutexTimeoutError(TimeoutError):
    def __init__(self, resource: str, attempts: int):
        super().__init__(f"could not acquire {resource!r} after {attempts} attempts")
        self.resource = resource
        self.attempts = attempts


@dataclass(frozen=True)
class MutexLease:
    resource: str
    token: str
    lease_ms: int
    acquired_at_ms: int

    @property
    def expires_at_ms(self) -> int:
        return self.acquired_at_ms + self.lease_ms


class RedisMutex:
    """Lease-based mutual exclusion over a single Redis instance.

    A lease is a ``SET resource token PX lease NX``; release deletes the key
    only while it still holds the lease's token, so an expired lease that was
    re-acquired by another process is never released by the old holder.
    Acquisition retries ``retry_count`` times, sleeping ``retry_delay_ms``
    plus up to ``retry_jitter_ms`` of random jitter between attempts.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        retry_count: int = 100,
        retry_delay_ms: int = 200,
        retry_jitter_ms: int = 200,
    ):
        self.redis = redis
        self.retry_count = retry_count
        self.retry_delay_ms = retry_delay_ms
        self.retry_jitter_ms = retry_jitter_ms
        self._release_script = redis.register_script(_RELEASE_SCRIPT)

    def _backoff_seconds(self) -> float:
        jitter = random.randint(0, self.retry_jitter_ms) if self.retry_jitter_ms else 0
        return (self.retry_delay_ms + jitter) / 1000.0

    async def acquire(self, resource: str, lease_ms: int = DEFAULT_LEASE_MS) -> MutexLease:
        if lease_ms <= 0:
            raise ValueError("lease_ms must be positive")
        token = secrets.token_hex(16)
        start = time.perf_counter()
        attempts = 0
        while True:
            attempts += 1
            now_ms = int(time.time() * 1000)
            if await self.redis.set(resource, token, px=lease_ms, nx=True):
                MUTEX_WAIT_MS.observe((time.perf_counter() - start) * 1000.0)
                if attempts > 1:
                    log.bind(resource=resource, attempts=attempts).debug(
                        "mutex.acquired_after_retry"
                    )
                return MutexLease(
                    resource=resource,
                    token=token,
                    lease_ms=lease_ms,
                    acquired_at_ms=now_ms,
                )
            if attempts > self.retry_count:
                MUTEX_TIMEOUTS_TOTAL.inc()
                log.bind(resource=resource, attempts=attempts).warning("mutex.timeout")
                raise MutexTimeoutError(resource, attempts)
            await asyncio.sleep(self._backoff_seconds())

    async def release(self, lease: MutexLease) -> bool:
        released = await self._release_script(keys=[lease.resource], args=[lease.token])
        if not int(released):
            # lease expired, possibly re-acquired by someone else
            log.bind(resource=lease.resource).debug("mutex.release_stale")
            return False
        return True

    @asynccontextmanager
    async def hold(
        self, resource: str, lease_ms: int = DEFAULT_LEASE_MS
    ) -> AsyncIterator[MutexLease]:
        lease = await self.acquire(resource, lease_ms)
        try:
            yield lease
        finally:
            await self.release(lease)
