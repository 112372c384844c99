from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from annonest.access.roles import can_manage_role, can_manage_users
from annonest.core.errors import AuthorizationError, ConflictError, ValidationError
from annonest.identity.models import User
from annonest.identity.schemas import UserRead
from annonest.platform.security.context import AuthContext
from annonest.platform.security.repository import BaseRepository
from annonest.services.audit import write_audit_log


logger = logging.getLogger("annonest.identity")


class UserRepository(BaseRepository[User]):
    resource = "user"
    model = User


def require_manager(ctx: AuthContext, action: str) -> None:
    if not can_manage_users(ctx.role):
        raise AuthorizationError(f"role {ctx.role} cannot {action}")


@dataclass(slots=True)
class IdentityService:
    user_repository: UserRepository = UserRepository()

    def list_users(self, session: Session, ctx: AuthContext) -> list[UserRead]:
        require_manager(ctx, "list users")
        rows = self.user_repository.list_scoped(session, ctx, order_by=User.email.asc())
        return [UserRead.model_validate(row) for row in rows]

    def require_org_users(self, session: Session, ctx: AuthContext, user_ids: Iterable[uuid.UUID]) -> list[User]:
        """Resolve ``user_ids`` inside the caller's org, keeping first-seen order and dropping duplicates."""

        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return []
        rows = session.scalars(select(User).where(and_(User.id.in_(unique_ids), User.org_id == ctx.org_id))).all()
        by_id = {row.id: row for row in rows}
        unknown = [str(user_id) for user_id in unique_ids if user_id not in by_id]
        if unknown:
            raise ValidationError(
                "assignees must be users of your organization",
                details={"unknown_user_ids": unknown},
            )
        return [by_id[user_id] for user_id in unique_ids]

    def _managed_target(self, session: Session, ctx: AuthContext, user_id: uuid.UUID, action: str) -> User:
        require_manager(ctx, action)
        if user_id == ctx.user_id:
            raise AuthorizationError(f"you cannot {action} your own account")
        target = self.user_repository.get(session, ctx, user_id)
        if not can_manage_role(ctx.role, target.role):
            raise AuthorizationError(f"role {ctx.role} cannot manage role {target.role}")
        return target

    def change_role(self, session: Session, ctx: AuthContext, user_id: uuid.UUID, new_role: str) -> UserRead:
        target = self._managed_target(session, ctx, user_id, "change the role of")
        if not can_manage_role(ctx.role, new_role):
            raise AuthorizationError(f"role {ctx.role} cannot grant role {new_role}")

        previous = target.role
        target.role = new_role
        write_audit_log(session, ctx, "user.role_changed", "user", target.id, {"from": previous, "to": new_role})
        session.commit()
        session.refresh(target)
        logger.info("user.role_changed", extra={"user_id": str(target.id), "action": "role_change"})
        return UserRead.model_validate(target)

    def set_approval(self, session: Session, ctx: AuthContext, user_id: uuid.UUID, *, approve: bool) -> UserRead:
        target = self._managed_target(session, ctx, user_id, "approve" if approve else "reject")
        new_status = "approved" if approve else "rejected"
        if target.approval_status == new_status:
            raise ConflictError(f"user is already {new_status}")

        previous = target.approval_status
        target.approval_status = new_status
        write_audit_log(
            session,
            ctx,
            f"user.{new_status}",
            "user",
            target.id,
            {"from": previous, "to": new_status},
        )
        session.commit()
        session.refresh(target)
        return UserRead.model_validate(target)


identity_service = IdentityService()
