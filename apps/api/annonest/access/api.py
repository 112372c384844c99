from __future__ import annotations

from fastapi import APIRouter, Depends

from annonest.access.roles import can_manage_users, module_access
from annonest.core.auth import get_auth_context
from annonest.identity.schemas import AccessRead
from annonest.platform.security.context import AuthContext


router = APIRouter(prefix="/api/access", tags=["access"])


@router.get("/me", response_model=AccessRead)
def my_access(ctx: AuthContext = Depends(get_auth_context)) -> AccessRead:
    return AccessRead(
        user_id=ctx.user_id,
        org_id=ctx.org_id,
        role=ctx.role,
        rank=ctx.rank,
        modules=sorted(str(module) for module in module_access(ctx.role)),
        can_manage_users=can_manage_users(ctx.role),
    )
