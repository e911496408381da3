import hmac

from fastapi import Header, HTTPException

from locker.core.config import settings


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


async def verify_admin(authorization: str | None = Header(None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1]
    if not constant_time_equals(token, settings.ADMIN_BEARER_TOKEN):
        raise HTTPException(status_code=403, detail="Invalid admin token")
    return token
