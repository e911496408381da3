from __future__ import annotations

import secrets
import time
from typing import Optional, Union

from redis.asyncio import Redis

from locker.core.logging import get_logger
from locker.coord.keys import limiter_key, lock_key, mutex_key
from locker.coord.mutex import DEFAULT_LEASE_MS, RedisMutex
from locker.coord.schemas import LockState

log = get_logger("coord.limiter")


class SlidingWindowLimiter:
    """Sliding-window counter that escalates into a lock record.

    Every ``limit`` call for a key runs under that key's mutex lease, so the
    read-count-then-lock sequence is serialized across processes. Counting and
    escalation use separate records: the window keeps accumulating while the
    key is locked.
    """

    def __init__(
        self,
        redis: Redis,
        namespace: str,
        mutex: Optional[RedisMutex] = None,
        *,
        lease_ms: int = DEFAULT_LEASE_MS,
    ):
        self.redis = redis
        self.namespace = namespace
        self.mutex = mutex or RedisMutex(redis)
        self.lease_ms = lease_ms

    async def limit(
        self,
        key: str,
        threshold: int,
        period_seconds: int,
        limited_seconds: int,
        *,
        now_ms: Optional[int] = None,
    ) -> Union[int, LockState]:
        for name, value in (
            ("threshold", threshold),
            ("period_seconds", period_seconds),
            ("limited_seconds", limited_seconds),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be a positive integer")

        async with self.mutex.hold(mutex_key(self.namespace, key), self.lease_ms):
            return await self._limit_locked(
                key, threshold, period_seconds, limited_seconds, now_ms
            )

    async def _limit_locked(
        self,
        key: str,
        threshold: int,
        period_seconds: int,
        limited_seconds: int,
        now_ms: Optional[int],
    ) -> Union[int, LockState]:
        locked_key = lock_key(self.namespace, key)
        window_key = limiter_key(self.namespace, key)
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        if await self.redis.exists(locked_key):
            return LockState.ALREADY_LOCKED

        count = await self._count(window_key, now_ms, period_seconds)
        if count >= threshold:
            await self.redis.set(locked_key, now_ms, ex=limited_seconds, nx=True)
            log.bind(
                namespace=self.namespace, key=key, count=count, threshold=threshold
            ).info("limit.escalated")
            return LockState.NEWLY_LOCKED
        return count

    async def _count(self, window_key: str, now_ms: int, period_seconds: int) -> int:
        """Record one request and return how many earlier ones are in the window.

        Prune, count, append and TTL refresh run in a single MULTI/EXEC so the
        count never includes entries at or below ``now - period``.
        """
        min_score = now_ms - period_seconds * 1000
        # unique member so requests within the same millisecond all count
        member = f"{now_ms}:{secrets.token_hex(4)}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(window_key, "-inf", min_score)
            pipe.zcard(window_key)
            pipe.zadd(window_key, {member: now_ms})
            pipe.expire(window_key, period_seconds + 1)
            _, count, _, _ = await pipe.execute()
        return int(count)
