from functools import lru_cache
from typing import Optional

from fastapi import Depends
from redis.asyncio import Redis

from locker.core.config import settings
from locker.core.security import verify_admin
from locker.coord.engine import RedisLocker


@lru_cache()
def _redis_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)


async def get_redis() -> Redis:
    return _redis_client()


_locker_singleton: Optional[RedisLocker] = None


def get_locker(redis: Redis = Depends(get_redis)) -> RedisLocker:
    global _locker_singleton
    if _locker_singleton is None:
        _locker_singleton = RedisLocker.from_settings(redis, settings)
    return _locker_singleton


require_admin = verify_admin
