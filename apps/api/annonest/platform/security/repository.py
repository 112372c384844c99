from __future__ import annotations

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from annonest.core.errors import NotFoundError
from annonest.platform.security.context import AuthContext
from annonest.platform.security.tenancy import apply_tenant_filter


ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    """Tenant-scoped access to one model.

    Rows outside the caller's org are indistinguishable from missing rows.
    """

    resource = ""
    model: type[ModelT]

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext) -> Select[Any]:
        return apply_tenant_filter(query, ctx)

    def find(self, session: Session, ctx: AuthContext, row_id: uuid.UUID) -> ModelT | None:
        stmt = select(self.model).where(getattr(self.model, "id") == row_id)
        return session.scalar(self.apply_scope_query(stmt, ctx))

    def get(self, session: Session, ctx: AuthContext, row_id: uuid.UUID) -> ModelT:
        row = self.find(session, ctx, row_id)
        if row is None:
            raise NotFoundError(f"{self.resource} not found")
        return row

    def list_scoped(self, session: Session, ctx: AuthContext, *filters: Any, order_by: Any = None) -> list[ModelT]:
        stmt = select(self.model)
        if filters:
            stmt = stmt.where(*filters)
        stmt = self.apply_scope_query(stmt, ctx)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        return list(session.scalars(stmt).all())
