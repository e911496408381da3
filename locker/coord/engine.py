from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Iterable, Optional, Set, Union

from redis.asyncio import Redis

from locker.core.logging import get_logger
from locker.coord.limiter import SlidingWindowLimiter
from locker.coord.locks import LockManager
from locker.coord.mutex import DEFAULT_LEASE_MS, RedisMutex
from locker.coord.schemas import LockState
from locker.observability.metrics import (
    OPERATION_LATENCY_MS,
    OPERATIONS_TOTAL,
    update_redis_pool_gauge,
)
from locker.observability.tracing import get_tracer

log = get_logger("coord.engine")
tracer = get_tracer("locker.coord")


def _outcome(result, ok: str = "ok") -> str:
    if isinstance(result, LockState):
        return "already_locked" if result is LockState.ALREADY_LOCKED else "newly_locked"
    if isinstance(result, bool):
        return "released" if result else "rejected"
    return ok


class RedisLocker:
    """Namespace-scoped locks and rate limits over a shared Redis.

    Instances are cheap and hold no state besides their collaborators, so
    several namespaces can share one client.
    """

    def __init__(
        self,
        redis: Redis,
        namespace: str,
        *,
        mutex: Optional[RedisMutex] = None,
        lease_ms: Optional[int] = None,
    ):
        self.redis = redis
        self.namespace = namespace
        self.locks = LockManager(redis, namespace)
        self.limiter = SlidingWindowLimiter(
            redis,
            namespace,
            mutex or RedisMutex(redis),
            lease_ms=lease_ms or DEFAULT_LEASE_MS,
        )

    @classmethod
    def from_settings(cls, redis: Redis, settings) -> "RedisLocker":
        mutex = RedisMutex(
            redis,
            retry_count=settings.MUTEX_RETRY_COUNT,
            retry_delay_ms=settings.MUTEX_RETRY_DELAY_MS,
            retry_jitter_ms=settings.MUTEX_RETRY_JITTER_MS,
        )
        return cls(
            redis,
            settings.LOCKER_NAMESPACE,
            mutex=mutex,
            lease_ms=settings.MUTEX_LEASE_MS,
        )

    @asynccontextmanager
    async def _observe(self, operation: str, **fields):
        start = time.perf_counter()
        with tracer.start_as_current_span(f"locker.{operation}") as span:
            span.set_attribute("locker.namespace", self.namespace)
            outcome = {"value": "error"}
            try:
                yield outcome
            finally:
                dur_ms = (time.perf_counter() - start) * 1000.0
                span.set_attribute("locker.outcome", outcome["value"])
                OPERATION_LATENCY_MS.labels(operation=operation).observe(dur_ms)
                OPERATIONS_TOTAL.labels(
                    operation=operation, outcome=outcome["value"]
                ).inc()
                update_redis_pool_gauge(self.redis)
                log.bind(
                    namespace=self.namespace,
                    outcome=outcome["value"],
                    duration_ms=round(dur_ms, 3),
                    **fields,
                ).debug(operation)

    async def list_locked(self) -> Set[str]:
        async with self._observe("list_locked") as outcome:
            result = await self.locks.list_locked()
            outcome["value"] = "ok"
            return result

    async def lock(self, keys: Iterable[str], seconds: int) -> Union[int, LockState]:
        keys = [keys] if isinstance(keys, str) else list(keys)
        async with self._observe("lock", keys=keys, seconds=seconds) as outcome:
            result = await self.locks.lock(keys, seconds)
            outcome["value"] = _outcome(result, "acquired")
            return result

    async def unlock(
        self, keys: Iterable[str], credential: Optional[int] = None
    ) -> bool:
        keys = [keys] if isinstance(keys, str) else list(keys)
        async with self._observe(
            "unlock", keys=keys, forced=credential is None
        ) as outcome:
            result = await self.locks.unlock(keys, credential)
            outcome["value"] = _outcome(result)
            return result

    async def limit(
        self,
        key: str,
        threshold: int,
        period_seconds: int,
        limited_seconds: int,
    ) -> Union[int, LockState]:
        async with self._observe("limit", key=key, threshold=threshold) as outcome:
            result = await self.limiter.limit(
                key, threshold, period_seconds, limited_seconds
            )
            outcome["value"] = _outcome(result, "allowed")
            return result
