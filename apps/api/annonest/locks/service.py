"""Advisory edit locks on DataNest entities.

A lock is live while ``locked_at`` is younger than the configured TTL. Expired
rows are treated as absent by every read and are cleared lazily on acquire;
the periodic sweep only keeps the table small.

Locks gate edit sessions in the UI. Entity writes do not check them.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from opentelemetry import trace
from sqlalchemy import ColumnElement, and_, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from annonest.core.config import get_settings
from annonest.core.errors import AuthorizationError, ConflictError, LockHeldError, NotFoundError
from annonest.datanest.service import entity_service
from annonest.locks.models import EntityEditLock
from annonest.locks.schemas import LockRead, LockStatusRead
from annonest.metrics import observe_entity_lock_event
from annonest.platform.security.context import AuthContext
from annonest.services.audit import write_audit_log


logger = logging.getLogger("annonest.locks")
tracer = trace.get_tracer("annonest.locks")


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class EntityLockService:
    ttl_seconds: int | None = None

    @property
    def ttl(self) -> timedelta:
        seconds = self.ttl_seconds if self.ttl_seconds is not None else get_settings().entity_lock_ttl_seconds
        return timedelta(seconds=seconds)

    def _now(self, now: datetime | None) -> datetime:
        return now or datetime.now(timezone.utc)

    def _entity_filter(self, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID) -> ColumnElement[bool]:
        return and_(
            EntityEditLock.org_id == ctx.org_id,
            EntityEditLock.entity_type == entity_type,
            EntityEditLock.entity_id == entity_id,
        )

    def _live_lock(
        self, session: Session, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID, now: datetime
    ) -> EntityEditLock | None:
        cutoff = now - self.ttl
        return session.scalar(
            select(EntityEditLock)
            .where(and_(self._entity_filter(ctx, entity_type, entity_id), EntityEditLock.locked_at >= cutoff))
            .execution_options(populate_existing=True)
        )

    def _status(self, ctx: AuthContext, lock: EntityEditLock | None) -> LockStatusRead:
        if lock is None:
            return LockStatusRead(is_locked=False, is_own_lock=False, lock=None)
        locked_at = _as_aware(lock.locked_at)
        return LockStatusRead(
            is_locked=True,
            is_own_lock=lock.locked_by == ctx.user_id,
            lock=LockRead(
                entity_type=lock.entity_type,
                entity_id=lock.entity_id,
                locked_by=lock.locked_by,
                locked_by_name=lock.locked_by_name,
                locked_at=locked_at,
                expires_at=locked_at + self.ttl,
            ),
        )

    def _require_entity(self, session: Session, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID) -> None:
        entity_service.get_entity(session, ctx, entity_type, entity_id)

    def read(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        entity_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> LockStatusRead:
        self._require_entity(session, ctx, entity_type, entity_id)
        return self._status(ctx, self._live_lock(session, ctx, entity_type, entity_id, self._now(now)))

    def acquire(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        entity_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> LockStatusRead:
        """Take or refresh the caller's lock, or raise ``LockHeldError`` naming the live holder."""

        self._require_entity(session, ctx, entity_type, entity_id)
        current = self._now(now)
        cutoff = current - self.ttl

        with tracer.start_as_current_span("entity_lock.acquire") as span:
            span.set_attribute("entity.type", entity_type)
            span.set_attribute("entity.id", str(entity_id))

            session.execute(
                delete(EntityEditLock)
                .where(and_(self._entity_filter(ctx, entity_type, entity_id), EntityEditLock.locked_at < cutoff))
                .execution_options(synchronize_session=False)
            )
            refreshed = session.execute(
                update(EntityEditLock)
                .where(and_(self._entity_filter(ctx, entity_type, entity_id), EntityEditLock.locked_by == ctx.user_id))
                .values(locked_at=current, locked_by_name=ctx.display_name)
                .execution_options(synchronize_session=False)
            )
            if refreshed.rowcount > 0:
                session.commit()
                span.set_attribute("outcome", "refreshed")
                observe_entity_lock_event("acquire", "refreshed")
                return self._status(ctx, self._live_lock(session, ctx, entity_type, entity_id, current))

            session.add(
                EntityEditLock(
                    org_id=ctx.org_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    locked_by=ctx.user_id,
                    locked_by_name=ctx.display_name,
                    locked_at=current,
                )
            )
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                holder = self._live_lock(session, ctx, entity_type, entity_id, current)
                span.set_attribute("outcome", "held")
                observe_entity_lock_event("acquire", "held")
                if holder is None:
                    raise ConflictError("the edit lock changed hands, refresh and retry")
                logger.info(
                    "entity_lock.held",
                    extra={"entity_type": entity_type, "entity_id": str(entity_id), "outcome": "held"},
                )
                raise LockHeldError(
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    locked_by=str(holder.locked_by),
                    locked_by_name=holder.locked_by_name,
                    locked_at=_as_aware(holder.locked_at),
                )

            write_audit_log(session, ctx, "entity_lock.acquired", entity_type, entity_id)
            session.commit()
            span.set_attribute("outcome", "acquired")

        observe_entity_lock_event("acquire", "acquired")
        logger.info(
            "entity_lock.acquired",
            extra={"entity_type": entity_type, "entity_id": str(entity_id), "user_id": str(ctx.user_id)},
        )
        return self._status(ctx, self._live_lock(session, ctx, entity_type, entity_id, current))

    def heartbeat(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        entity_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> LockStatusRead:
        current = self._now(now)
        cutoff = current - self.ttl
        result = session.execute(
            update(EntityEditLock)
            .where(
                and_(
                    self._entity_filter(ctx, entity_type, entity_id),
                    EntityEditLock.locked_by == ctx.user_id,
                    EntityEditLock.locked_at >= cutoff,
                )
            )
            .values(locked_at=current)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            observe_entity_lock_event("heartbeat", "lost")
            raise ConflictError("you no longer hold the edit lock, reopen the record to edit")
        session.commit()
        observe_entity_lock_event("heartbeat", "success")
        return self._status(ctx, self._live_lock(session, ctx, entity_type, entity_id, current))

    def release(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        entity_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> None:
        """Drop the lock. Only the holder or a manager may release it."""

        entity_service.kind(entity_type)
        lock = self._live_lock(session, ctx, entity_type, entity_id, self._now(now))
        if lock is None:
            observe_entity_lock_event("release", "absent")
            raise NotFoundError("lock not found")
        if lock.locked_by != ctx.user_id and not ctx.is_manager:
            observe_entity_lock_event("release", "forbidden")
            raise AuthorizationError("only the lock holder or a manager can release this lock")

        override = lock.locked_by != ctx.user_id
        session.delete(lock)
        write_audit_log(
            session,
            ctx,
            "entity_lock.released",
            entity_type,
            entity_id,
            {"override": override, "holder": str(lock.locked_by)},
        )
        session.commit()
        observe_entity_lock_event("release", "override" if override else "success")

    def release_own(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        entity_id: uuid.UUID,
    ) -> bool:
        """Best-effort release for page unload. Never fails when the caller holds nothing."""

        entity_service.kind(entity_type)
        result = session.execute(
            delete(EntityEditLock)
            .where(and_(self._entity_filter(ctx, entity_type, entity_id), EntityEditLock.locked_by == ctx.user_id))
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount > 0
        if released:
            write_audit_log(session, ctx, "entity_lock.released", entity_type, entity_id, {"beacon": True})
        session.commit()
        observe_entity_lock_event("release_beacon", "success" if released else "absent")
        return released

    def sweep_expired(self, session: Session, *, now: datetime | None = None) -> int:
        cutoff = self._now(now) - self.ttl
        result = session.execute(
            delete(EntityEditLock)
            .where(EntityEditLock.locked_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        deleted = result.rowcount or 0
        observe_entity_lock_event("sweep", "success")
        logger.info("entity_lock.swept", extra={"deleted": deleted})
        return deleted


entity_lock_service = EntityLockService()
