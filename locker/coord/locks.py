from __future__ import annotations

import time
from typing import Iterable, Optional, Set, Union

from redis.asyncio import Redis

from locker.core.logging import get_logger
from locker.coord.keys import KeyType, key_prefix, lock_key, scan_pattern
from locker.coord.schemas import LockState

log = get_logger("coord.locks")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _unique(keys: Iterable[str]) -> list[str]:
    # order-preserving dedup
    return list(dict.fromkeys(keys))


class LockManager:
    """Exclusive locks over one or more logical keys.

    A lock record holds the acquisition timestamp, which doubles as the
    release credential. Nothing is cached locally; every call re-reads Redis.
    """

    def __init__(self, redis: Redis, namespace: str):
        self.redis = redis
        self.namespace = namespace

    def _store_keys(self, keys: Iterable[str]) -> list[str]:
        if isinstance(keys, str):
            keys = [keys]
        return _unique(lock_key(self.namespace, k) for k in keys)

    async def list_locked(self) -> Set[str]:
        prefix = key_prefix(self.namespace, KeyType.LOCKED)
        locked: Set[str] = set()
        async for key in self.redis.scan_iter(match=scan_pattern(prefix)):
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            locked.add(key[len(prefix):])
        return locked

    async def lock(
        self,
        keys: Iterable[str],
        seconds: int,
        *,
        now_ms: Optional[int] = None,
    ) -> Union[int, LockState]:
        if seconds <= 0:
            raise ValueError("seconds must be a positive integer")
        store_keys = self._store_keys(keys)
        if not store_keys:
            raise ValueError("at least one key is required")
        stamp = _now_ms() if now_ms is None else now_ms

        # Advisory fast-fail; the conditional writes below settle races
        if await self.redis.exists(*store_keys):
            log.bind(namespace=self.namespace, keys=store_keys).debug("lock.exists")
            return LockState.ALREADY_LOCKED

        async with self.redis.pipeline(transaction=True) as pipe:
            for key in store_keys:
                pipe.set(key, stamp, ex=seconds, nx=True)
            results = await pipe.execute()

        written = [key for key, ok in zip(store_keys, results) if ok]
        if len(written) != len(store_keys):
            await self._release_owned(written, stamp)
            log.bind(namespace=self.namespace, keys=store_keys).info("lock.lost_race")
            return LockState.ALREADY_LOCKED
        return stamp

    async def _release_owned(self, store_keys: list[str], stamp: int) -> None:
        if not store_keys:
            return
        values = await self.redis.mget(*store_keys)
        owned = [k for k, v in zip(store_keys, values) if _as_str(v) == str(stamp)]
        if owned:
            await self.redis.delete(*owned)

    async def unlock(
        self, keys: Iterable[str], credential: Optional[int] = None
    ) -> bool:
        store_keys = self._store_keys(keys)
        if not store_keys:
            return True

        if credential is not None:
            values = await self.redis.mget(*store_keys)
            expected = str(credential)
            if any(v is not None and _as_str(v) != expected for v in values):
                log.bind(namespace=self.namespace, keys=store_keys).info(
                    "unlock.credential_mismatch"
                )
                return False

        await self.redis.delete(*store_keys)
        return True


def _as_str(value) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value
