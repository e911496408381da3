from __future__ import annotations

from fastapi import APIRouter, Depends

from locker.core.deps import get_locker, require_admin
from locker.core.logging import get_logger
from locker.coord.engine import RedisLocker
from locker.coord.schemas import ForceUnlockRequest, LockedKeys, UnlockResponse


router = APIRouter(prefix="/v1/admin")
log = get_logger("api.admin")


@router.get("/locks", response_model=LockedKeys)
async def list_locks(
    locker: RedisLocker = Depends(get_locker),
    _: str = Depends(require_admin),
):
    keys = await locker.list_locked()
    log.bind(count=len(keys)).info("admin.list_locks")
    return LockedKeys(namespace=locker.namespace, keys=sorted(keys))


@router.post("/locks/release", response_model=UnlockResponse)
async def force_release(
    payload: ForceUnlockRequest,
    locker: RedisLocker = Depends(get_locker),
    _: str = Depends(require_admin),
):
    released = await locker.unlock(payload.keys)
    log.bind(keys=payload.keys).warning("admin.force_release")
    return UnlockResponse(released=released)
