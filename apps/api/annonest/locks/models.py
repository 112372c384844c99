from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from annonest.core.database import Base, utcnow


class EntityEditLock(Base):
    """Advisory edit lock. Entity writes never consult it."""

    __tablename__ = "entity_edit_locks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    locked_by: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    locked_by_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "entity_type", "entity_id", name="uq_entity_edit_locks_entity"),
        Index("ix_entity_edit_locks_org_id", "org_id"),
        Index("ix_entity_edit_locks_locked_at", "locked_at"),
    )
