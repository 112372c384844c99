from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from annonest.platform.security.context import AuthContext


def apply_tenant_filter(query: Select[Any], ctx: AuthContext) -> Select[Any]:
    """Restrict every selected model that carries an ``org_id`` column to the caller's org.

    There is no bypass: super admins are still bound to the org they authenticated into.
    """

    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None:
            continue
        if hasattr(model, "org_id"):
            query = query.where(getattr(model, "org_id") == ctx.org_id)
    return query
