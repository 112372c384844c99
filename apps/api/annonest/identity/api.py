from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from annonest.core.auth import get_auth_context
from annonest.core.database import get_db
from annonest.identity.schemas import RoleChangeRequest, UserRead
from annonest.identity.service import identity_service
from annonest.platform.security.context import AuthContext


router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=list[UserRead])
def list_users(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[UserRead]:
    return identity_service.list_users(db, ctx)


@router.patch("/{user_id}/role", response_model=UserRead)
def change_role(
    user_id: uuid.UUID,
    payload: RoleChangeRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> UserRead:
    return identity_service.change_role(db, ctx, user_id, payload.role)


@router.post("/{user_id}/approve", response_model=UserRead)
def approve_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> UserRead:
    return identity_service.set_approval(db, ctx, user_id, approve=True)


@router.post("/{user_id}/reject", response_model=UserRead)
def reject_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> UserRead:
    return identity_service.set_approval(db, ctx, user_id, approve=False)
