from typing import Any

from sqlalchemy.orm import Session

from annonest.models.audit import AuditLog
from annonest.platform.security.context import AuthContext


def write_audit_log(
    db: Session,
    ctx: AuthContext,
    action: str,
    entity_type: str,
    entity_id: Any,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction; the caller commits."""

    payload = dict(details or {})
    if ctx.correlation_id is not None:
        payload.setdefault("correlation_id", ctx.correlation_id)
    event = AuditLog(
        org_id=ctx.org_id,
        user_id=ctx.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=payload,
    )
    db.add(event)
    return event
