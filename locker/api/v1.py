from fastapi import APIRouter, Depends, HTTPException, Response

from locker.core.config import settings
from locker.core.deps import get_locker
from locker.core.logging import get_logger
from locker.coord.engine import RedisLocker
from locker.coord.mutex import MutexTimeoutError
from locker.coord.schemas import (
    LimitDecision,
    LimitRequest,
    LockRequest,
    LockResponse,
    LockState,
    UnlockRequest,
    UnlockResponse,
)

router = APIRouter()
log = get_logger("api.v1")


@router.get("/health")
async def health():
    return {"status": "ok", "version": settings.APP_VERSION}


@router.post("/locks", response_model=LockResponse)
async def acquire_lock(
    payload: LockRequest,
    response: Response,
    locker: RedisLocker = Depends(get_locker),
):
    result = await locker.lock(payload.keys, payload.seconds)
    if isinstance(result, LockState):
        response.status_code = 409
        return LockResponse(locked=False, state=result)
    log.bind(keys=payload.keys, seconds=payload.seconds).info("lock")
    return LockResponse(locked=True, credential=result)


@router.post("/locks/release", response_model=UnlockResponse)
async def release_lock(
    payload: UnlockRequest,
    response: Response,
    locker: RedisLocker = Depends(get_locker),
):
    released = await locker.unlock(payload.keys, payload.credential)
    if not released:
        response.status_code = 409
    log.bind(keys=payload.keys, released=released).info("unlock")
    return UnlockResponse(released=released)


@router.post("/limit", response_model=LimitDecision)
async def check_limit(
    payload: LimitRequest,
    response: Response,
    locker: RedisLocker = Depends(get_locker),
):
    try:
        result = await locker.limit(
            payload.key,
            payload.threshold,
            payload.period_seconds,
            payload.limited_seconds,
        )
    except MutexTimeoutError:
        log.bind(key=payload.key).warning("limit.mutex_timeout")
        raise HTTPException(status_code=503, detail="Limiter busy, retry later")

    if isinstance(result, LockState):
        response.status_code = 429
        response.headers["Retry-After"] = str(payload.limited_seconds)
        log.bind(key=payload.key, state=result.value).info("limit.blocked")
        return LimitDecision(allowed=False, state=result)
    return LimitDecision(allowed=True, count=result)
