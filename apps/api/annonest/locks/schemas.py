from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class LockRead(BaseModel):
    entity_type: str
    entity_id: UUID
    locked_by: UUID
    locked_by_name: str | None
    locked_at: datetime
    expires_at: datetime


class LockStatusRead(BaseModel):
    is_locked: bool
    is_own_lock: bool
    lock: LockRead | None = None


class LockReleaseBeacon(BaseModel):
    entity_type: str = Field(min_length=1)
    entity_id: UUID
