from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


RoleName = Literal["super_admin", "admin", "manager", "researcher", "annotator", "qa", "guest"]


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    email: str
    display_name: str | None
    role: str
    approval_status: str
    trial_ends_at: datetime | None
    is_active: bool
    created_at: datetime


class RoleChangeRequest(BaseModel):
    role: RoleName


class AccessRead(BaseModel):
    user_id: UUID
    org_id: UUID
    role: str
    rank: int
    modules: list[str]
    can_manage_users: bool
