from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class LockState(str, Enum):
    """Sentinel results of ``lock`` and ``limit``.

    ALREADY_LOCKED: the key was locked before this call.
    NEWLY_LOCKED: this ``limit`` call crossed the threshold and escalated.
    """

    ALREADY_LOCKED = "LOCKED"
    NEWLY_LOCKED = "LOCK"


# Data-plane request/response models
class LockRequest(BaseModel):
    keys: List[str] = Field(min_length=1)
    seconds: int = Field(gt=0)


class LockResponse(BaseModel):
    locked: bool
    credential: Optional[int] = None
    state: Optional[LockState] = None


class UnlockRequest(BaseModel):
    keys: List[str]
    credential: int


class UnlockResponse(BaseModel):
    released: bool


class LimitRequest(BaseModel):
    key: str
    threshold: int = Field(gt=0)
    period_seconds: int = Field(gt=0)
    limited_seconds: int = Field(gt=0)


class LimitDecision(BaseModel):
    allowed: bool
    count: Optional[int] = None
    state: Optional[LockState] = None


# Admin DTOs
class ForceUnlockRequest(BaseModel):
    keys: List[str]


class LockedKeys(BaseModel):
    namespace: str
    keys: List[str]
