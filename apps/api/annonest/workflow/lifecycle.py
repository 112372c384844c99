"""Status transitions shared by annotation tasks and DataNest project items.

Every write is a single conditional UPDATE. Claim is guarded on the row still
being pending and unassigned; every other transition is guarded on the expected
status and ``row_version``. A zero rowcount means another writer got there
first and surfaces as ``ConflictError``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Collection, Mapping
from typing import Any, Generic, TypeVar

from opentelemetry import trace
from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from annonest.core.database import utcnow
from annonest.core.errors import ConflictError, NotFoundError
from annonest.metrics import observe_work_item_transition
from annonest.platform.security.context import AuthContext
from annonest.services.audit import write_audit_log


logger = logging.getLogger("annonest.workflow")
tracer = trace.get_tracer("annonest.workflow")

ItemT = TypeVar("ItemT")


class WorkItemLifecycle(Generic[ItemT]):
    def __init__(self, model: type[ItemT], *, status_attr: str, item_type: str, resource: str) -> None:
        self.model = model
        self.status_attr = status_attr
        self.item_type = item_type
        self.resource = resource

    @property
    def _status_column(self) -> Any:
        return getattr(self.model, self.status_attr)

    def status_of(self, item: ItemT) -> str:
        return getattr(item, self.status_attr)

    def load(self, session: Session, ctx: AuthContext, item_id: uuid.UUID) -> ItemT:
        model: Any = self.model
        item = session.scalar(select(model).where(and_(model.id == item_id, model.org_id == ctx.org_id)))
        if item is None:
            raise NotFoundError(f"{self.resource} not found")
        return item

    def _reload(self, session: Session, item_id: uuid.UUID) -> ItemT:
        model: Any = self.model
        item = session.scalar(select(model).where(model.id == item_id).execution_options(populate_existing=True))
        if item is None:
            raise NotFoundError(f"{self.resource} not found")
        return item

    def claim(self, session: Session, ctx: AuthContext, item_id: uuid.UUID) -> ItemT:
        """Take an unassigned pending item.

        Re-claiming an item the caller already holds in progress returns it unchanged.
        """

        model: Any = self.model
        with tracer.start_as_current_span(f"{self.item_type}.claim") as span:
            span.set_attribute("work_item.id", str(item_id))
            result = session.execute(
                update(model)
                .where(
                    and_(
                        model.id == item_id,
                        model.org_id == ctx.org_id,
                        self._status_column == "pending",
                        model.assigned_to.is_(None),
                    )
                )
                .values(
                    {
                        self._status_column: "in_progress",
                        model.assigned_to: ctx.user_id,
                        model.updated_at: utcnow(),
                        model.row_version: model.row_version + 1,
                    }
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                current = self.load(session, ctx, item_id)
                if current.assigned_to == ctx.user_id and self.status_of(current) == "in_progress":
                    span.set_attribute("outcome", "noop")
                    observe_work_item_transition(self.item_type, "claim", "noop")
                    return current
                span.set_attribute("outcome", "conflict")
                observe_work_item_transition(self.item_type, "claim", "conflict")
                logger.info(
                    "work_item.claim_lost",
                    extra={"item_id": str(item_id), "user_id": str(ctx.user_id), "outcome": "conflict"},
                )
                raise ConflictError(
                    f"{self.resource} was already claimed, refresh and retry",
                    details={"status": self.status_of(current)},
                )

            write_audit_log(session, ctx, f"{self.item_type}.claim", self.item_type, item_id)
            session.commit()
            span.set_attribute("outcome", "success")

        observe_work_item_transition(self.item_type, "claim", "success")
        logger.info(
            "work_item.claimed",
            extra={"item_id": str(item_id), "user_id": str(ctx.user_id), "outcome": "success"},
        )
        return self._reload(session, item_id)

    def transition(
        self,
        session: Session,
        ctx: AuthContext,
        item: ItemT,
        *,
        action: str,
        from_statuses: Collection[str],
        to_status: str | None,
        expected_version: int | None = None,
        values: Mapping[Any, Any] | None = None,
        require_assignee: uuid.UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> ItemT:
        """Apply ``values`` and an optional status change if the row is still as the caller saw it.

        ``to_status=None`` keeps the status and only writes ``values``.
        """

        model: Any = self.model
        current_item: Any = item
        item_id = current_item.id
        current_status = self.status_of(item)
        if current_status not in from_statuses:
            observe_work_item_transition(self.item_type, action, "rejected")
            raise ConflictError(
                f"cannot {action.replace('_', ' ')} a {self.resource} in status {current_status}",
                details={"status": current_status, "allowed": sorted(from_statuses)},
            )

        version = expected_version if expected_version is not None else current_item.row_version
        conditions = [
            model.id == item_id,
            model.org_id == ctx.org_id,
            self._status_column.in_(list(from_statuses)),
            model.row_version == version,
        ]
        if require_assignee is not None:
            conditions.append(model.assigned_to == require_assignee)

        changes: dict[Any, Any] = dict(values or {})
        if to_status is not None:
            changes[self._status_column] = to_status
        changes[model.updated_at] = utcnow()
        changes[model.row_version] = model.row_version + 1

        result = session.execute(
            update(model).where(and_(*conditions)).values(changes).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            observe_work_item_transition(self.item_type, action, "conflict")
            raise ConflictError(
                f"{self.resource} was changed by someone else, refresh and retry",
                details={"expected_row_version": version},
            )

        audit_details = {"from": current_status, "to": to_status or current_status}
        audit_details.update(details or {})
        write_audit_log(session, ctx, f"{self.item_type}.{action}", self.item_type, item_id, audit_details)
        session.commit()

        observe_work_item_transition(self.item_type, action, "success")
        logger.info(
            "work_item.transition",
            extra={"item_id": str(item_id), "action": action, "outcome": "success", "user_id": str(ctx.user_id)},
        )
        return self._reload(session, item_id)

    def assign(
        self,
        session: Session,
        ctx: AuthContext,
        item: ItemT,
        assignee_id: uuid.UUID | None,
        *,
        action: str = "assign",
    ) -> ItemT:
        """Set the assignee without touching the status."""

        model: Any = self.model
        current_item: Any = item
        item_id = current_item.id
        previous = current_item.assigned_to
        session.execute(
            update(model)
            .where(and_(model.id == item_id, model.org_id == ctx.org_id))
            .values({model.assigned_to: assignee_id, model.updated_at: utcnow(), model.row_version: model.row_version + 1})
            .execution_options(synchronize_session=False)
        )
        write_audit_log(
            session,
            ctx,
            f"{self.item_type}.{action}",
            self.item_type,
            item_id,
            {"from": str(previous) if previous else None, "to": str(assignee_id) if assignee_id else None},
        )
        session.commit()
        observe_work_item_transition(self.item_type, action, "success")
        return self._reload(session, item_id)
