from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import pydantic
from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from annonest.core.database import utcnow
from annonest.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from annonest.datanest.models import ENTITY_TYPES, EntitiesProject, EntitiesProjectItem, EntitiesProjectMember, Relationship
from annonest.datanest.registry import ENTITY_REGISTRY, EntityKind
from annonest.datanest.repository import (
    EntitiesProjectRepository,
    ProjectItemRepository,
    ProjectMemberRepository,
    RelationshipRepository,
)
from annonest.datanest.schemas import (
    EntitiesProjectCreate,
    EntitiesProjectRead,
    ProjectItemCreate,
    ProjectItemRead,
    ProjectMemberCreate,
    ProjectMemberRead,
    RelationshipCreate,
    RelationshipRead,
)
from annonest.identity.service import identity_service, require_manager
from annonest.platform.security.context import AuthContext
from annonest.platform.security.tenancy import apply_tenant_filter
from annonest.services.audit import write_audit_log
from annonest.workflow.lifecycle import WorkItemLifecycle


logger = logging.getLogger("annonest.datanest")


def _validation_details(exc: pydantic.ValidationError) -> dict[str, Any]:
    return {"errors": exc.errors(include_url=False, include_context=False, include_input=False)}


@dataclass(slots=True)
class EntityService:
    """CRUD over the DataNest entity tables. Writes are last-write-wins; edit locks are advisory."""

    relationship_repository: RelationshipRepository = RelationshipRepository()

    def kind(self, entity_type: str) -> EntityKind:
        kind = ENTITY_REGISTRY.get(entity_type)
        if kind is None:
            raise ValidationError(
                f"unknown entity type {entity_type}",
                details={"allowed": list(ENTITY_TYPES)},
            )
        return kind

    def find_entity(self, session: Session, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID) -> Any | None:
        kind = self.kind(entity_type)
        stmt = select(kind.model).where(kind.model.id == entity_id)
        return session.scalar(apply_tenant_filter(stmt, ctx))

    def get_entity(self, session: Session, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID) -> Any:
        row = self.find_entity(session, ctx, entity_type, entity_id)
        if row is None:
            raise NotFoundError(f"{entity_type} not found")
        return row

    def display_name(self, entity_type: str, row: Any) -> str:
        return self.kind(entity_type).display_name(row)

    def read(self, session: Session, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID) -> dict[str, Any]:
        kind = self.kind(entity_type)
        row = self.get_entity(session, ctx, entity_type, entity_id)
        return kind.read_schema.model_validate(row).model_dump(mode="json")

    def list_entities(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        *,
        search: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        kind = self.kind(entity_type)
        name_column = getattr(kind.model, kind.name_attr)
        stmt = select(kind.model)
        if search:
            stmt = stmt.where(func.lower(name_column).contains(search.strip().lower()))
        stmt = apply_tenant_filter(stmt, ctx).order_by(name_column.asc()).limit(limit).offset(offset)
        rows = session.scalars(stmt).all()
        return [kind.read_schema.model_validate(row).model_dump(mode="json") for row in rows]

    def create_entity(
        self, session: Session, ctx: AuthContext, entity_type: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        kind = self.kind(entity_type)
        try:
            dto = kind.create_schema.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid {entity_type} payload", details=_validation_details(exc)) from exc

        values = dto.model_dump(mode="python", exclude_none=True)
        now = utcnow()
        row = kind.model(
            **values,
            org_id=ctx.org_id,
            last_updated_by=ctx.user_id,
            last_updated_on=now,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        write_audit_log(session, ctx, "entity.created", entity_type, row.id)
        session.commit()
        session.refresh(row)
        logger.info("entity.created", extra={"entity_type": entity_type, "entity_id": str(row.id)})
        return kind.read_schema.model_validate(row).model_dump(mode="json")

    def update_entity(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        entity_id: uuid.UUID,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        kind = self.kind(entity_type)
        row = self.get_entity(session, ctx, entity_type, entity_id)
        try:
            dto = kind.update_schema.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid {entity_type} payload", details=_validation_details(exc)) from exc

        changes = dto.model_dump(mode="python", exclude_unset=True)
        for key in ("sources_used", "source_urls"):
            if key in changes and changes[key] is None:
                changes[key] = []
        columns = kind.model.__table__.c
        for key, value in changes.items():
            if value is None and not columns[key].nullable:
                raise ValidationError(f"{key} cannot be empty")
            setattr(row, key, value)

        now = utcnow()
        row.last_updated_by = ctx.user_id
        row.last_updated_on = now
        row.updated_at = now
        write_audit_log(session, ctx, "entity.updated", entity_type, row.id, {"fields": sorted(changes)})
        session.commit()
        session.refresh(row)
        return kind.read_schema.model_validate(row).model_dump(mode="json")

    def delete_entity(self, session: Session, ctx: AuthContext, entity_type: str, entity_id: uuid.UUID) -> None:
        row = self.get_entity(session, ctx, entity_type, entity_id)
        session.execute(
            delete(Relationship).where(
                and_(
                    Relationship.org_id == ctx.org_id,
                    or_(
                        and_(Relationship.from_entity_type == entity_type, Relationship.from_entity_id == entity_id),
                        and_(Relationship.to_entity_type == entity_type, Relationship.to_entity_id == entity_id),
                    ),
                )
            )
        )
        session.delete(row)
        write_audit_log(session, ctx, "entity.deleted", entity_type, entity_id)
        session.commit()

    def create_relationship(self, session: Session, ctx: AuthContext, dto: RelationshipCreate) -> RelationshipRead:
        source = self.get_entity(session, ctx, dto.from_entity_type, dto.from_entity_id)
        target = self.get_entity(session, ctx, dto.to_entity_type, dto.to_entity_id)
        if dto.from_entity_type == dto.to_entity_type and dto.from_entity_id == dto.to_entity_id:
            raise ValidationError("an entity cannot be related to itself")

        relationship = Relationship(
            **dto.model_dump(mode="python"),
            org_id=ctx.org_id,
            from_entity_name_snapshot=self.display_name(dto.from_entity_type, source),
            to_entity_name_snapshot=self.display_name(dto.to_entity_type, target),
            created_by=ctx.user_id,
        )
        session.add(relationship)
        session.flush()
        write_audit_log(
            session,
            ctx,
            "relationship.created",
            "relationship",
            relationship.id,
            {"relationship_type": dto.relationship_type},
        )
        session.commit()
        session.refresh(relationship)
        return RelationshipRead.model_validate(relationship)

    def list_relationships(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
    ) -> list[RelationshipRead]:
        filters: list[Any] = []
        if entity_type is not None and entity_id is not None:
            self.kind(entity_type)
            filters.append(
                or_(
                    and_(Relationship.from_entity_type == entity_type, Relationship.from_entity_id == entity_id),
                    and_(Relationship.to_entity_type == entity_type, Relationship.to_entity_id == entity_id),
                )
            )
        elif entity_type is not None or entity_id is not None:
            raise ValidationError("entity_type and entity_id must be given together")

        rows = self.relationship_repository.list_scoped(
            session, ctx, *filters, order_by=Relationship.created_at.desc()
        )
        return [RelationshipRead.model_validate(row) for row in rows]

    def delete_relationship(self, session: Session, ctx: AuthContext, relationship_id: uuid.UUID) -> None:
        relationship = self.relationship_repository.get(session, ctx, relationship_id)
        session.delete(relationship)
        write_audit_log(session, ctx, "relationship.deleted", "relationship", relationship_id)
        session.commit()


entity_service = EntityService()

item_lifecycle: WorkItemLifecycle[EntitiesProjectItem] = WorkItemLifecycle(
    EntitiesProjectItem,
    status_attr="task_status",
    item_type="project_item",
    resource="project item",
)


@dataclass(slots=True)
class ProjectService:
    """DataNest projects and their work items.

    Items follow pending -> in_progress -> completed, with blocked as a side exit.
    There is no review step, so the assignee may complete their own item.
    """

    project_repository: EntitiesProjectRepository = EntitiesProjectRepository()
    item_repository: ProjectItemRepository = ProjectItemRepository()
    member_repository: ProjectMemberRepository = ProjectMemberRepository()

    def _counts(self, session: Session, project_ids: list[uuid.UUID]) -> dict[uuid.UUID, dict[str, int]]:
        if not project_ids:
            return {}
        rows = session.execute(
            select(EntitiesProjectItem.project_id, EntitiesProjectItem.task_status, func.count())
            .where(EntitiesProjectItem.project_id.in_(project_ids))
            .group_by(EntitiesProjectItem.project_id, EntitiesProjectItem.task_status)
        ).all()
        counts: dict[uuid.UUID, dict[str, int]] = {}
        for project_id, task_status, total in rows:
            counts.setdefault(project_id, {})[task_status] = int(total)
        return counts

    def _to_read(self, project: EntitiesProject, counts: dict[str, int] | None = None) -> EntitiesProjectRead:
        read = EntitiesProjectRead.model_validate(project)
        read.item_counts = counts or {}
        return read

    def create_project(self, session: Session, ctx: AuthContext, dto: EntitiesProjectCreate) -> EntitiesProjectRead:
        require_manager(ctx, "create projects")
        project = EntitiesProject(**dto.model_dump(mode="python"), org_id=ctx.org_id, created_by=ctx.user_id)
        session.add(project)
        session.flush()
        write_audit_log(session, ctx, "project.created", "entities_project", project.id, {"name": dto.name})
        session.commit()
        session.refresh(project)
        return self._to_read(project)

    def list_projects(self, session: Session, ctx: AuthContext) -> list[EntitiesProjectRead]:
        stmt = select(EntitiesProject)
        if not ctx.is_manager:
            member_projects = select(EntitiesProjectMember.project_id).where(EntitiesProjectMember.user_id == ctx.user_id)
            item_projects = select(EntitiesProjectItem.project_id).where(EntitiesProjectItem.assigned_to == ctx.user_id)
            stmt = stmt.where(or_(EntitiesProject.id.in_(member_projects), EntitiesProject.id.in_(item_projects)))
        stmt = self.project_repository.apply_scope_query(stmt, ctx).order_by(EntitiesProject.created_at.desc())
        projects = session.scalars(stmt).all()
        counts = self._counts(session, [project.id for project in projects])
        return [self._to_read(project, counts.get(project.id)) for project in projects]

    def get_project(self, session: Session, ctx: AuthContext, project_id: uuid.UUID) -> EntitiesProjectRead:
        project = self.project_repository.get(session, ctx, project_id)
        return self._to_read(project, self._counts(session, [project.id]).get(project.id))

    def add_member(
        self, session: Session, ctx: AuthContext, project_id: uuid.UUID, dto: ProjectMemberCreate
    ) -> ProjectMemberRead:
        require_manager(ctx, "add project members")
        project = self.project_repository.get(session, ctx, project_id)
        identity_service.require_org_users(session, ctx, [dto.user_id])

        member = EntitiesProjectMember(org_id=ctx.org_id, project_id=project.id, user_id=dto.user_id, role=dto.role)
        session.add(member)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("user is already a member of this project") from exc
        write_audit_log(session, ctx, "project.member_added", "entities_project", project.id, {"user_id": str(dto.user_id)})
        session.commit()
        session.refresh(member)
        return ProjectMemberRead.model_validate(member)

    def list_members(self, session: Session, ctx: AuthContext, project_id: uuid.UUID) -> list[ProjectMemberRead]:
        project = self.project_repository.get(session, ctx, project_id)
        rows = self.member_repository.list_scoped(
            session, ctx, EntitiesProjectMember.project_id == project.id, order_by=EntitiesProjectMember.created_at.asc()
        )
        return [ProjectMemberRead.model_validate(row) for row in rows]

    def add_item(self, session: Session, ctx: AuthContext, project_id: uuid.UUID, dto: ProjectItemCreate) -> ProjectItemRead:
        require_manager(ctx, "add project items")
        project = self.project_repository.get(session, ctx, project_id)
        entity = entity_service.get_entity(session, ctx, dto.entity_type, dto.entity_id)
        if dto.assigned_to is not None:
            identity_service.require_org_users(session, ctx, [dto.assigned_to])

        item = EntitiesProjectItem(
            org_id=ctx.org_id,
            project_id=project.id,
            entity_type=dto.entity_type,
            entity_id=dto.entity_id,
            entity_name_snapshot=entity_service.display_name(dto.entity_type, entity),
            assigned_to=dto.assigned_to,
            notes=dto.notes,
        )
        session.add(item)
        session.flush()
        write_audit_log(
            session,
            ctx,
            "project_item.created",
            "project_item",
            item.id,
            {"entity_type": dto.entity_type, "entity_id": str(dto.entity_id)},
        )
        session.commit()
        session.refresh(item)
        return ProjectItemRead.model_validate(item)

    def list_items(self, session: Session, ctx: AuthContext, project_id: uuid.UUID) -> list[ProjectItemRead]:
        project = self.project_repository.get(session, ctx, project_id)
        filters: list[Any] = [EntitiesProjectItem.project_id == project.id]
        if not ctx.is_manager:
            filters.append(
                or_(
                    EntitiesProjectItem.assigned_to == ctx.user_id,
                    and_(EntitiesProjectItem.assigned_to.is_(None), EntitiesProjectItem.task_status == "pending"),
                )
            )
        rows = self.item_repository.list_scoped(session, ctx, *filters, order_by=EntitiesProjectItem.created_at.asc())
        return [ProjectItemRead.model_validate(row) for row in rows]

    def my_work(self, session: Session, ctx: AuthContext, *, status: str | None = None) -> list[ProjectItemRead]:
        filters: list[Any] = [EntitiesProjectItem.assigned_to == ctx.user_id]
        if status is not None:
            filters.append(EntitiesProjectItem.task_status == status)
        rows = self.item_repository.list_scoped(session, ctx, *filters, order_by=EntitiesProjectItem.updated_at.desc())
        return [ProjectItemRead.model_validate(row) for row in rows]

    def _require_owner_or_manager(self, ctx: AuthContext, item: EntitiesProjectItem, action: str) -> None:
        if ctx.is_manager or item.assigned_to == ctx.user_id:
            return
        raise AuthorizationError(f"only the assignee or a manager can {action} this item")

    def claim_item(self, session: Session, ctx: AuthContext, item_id: uuid.UUID) -> ProjectItemRead:
        return ProjectItemRead.model_validate(item_lifecycle.claim(session, ctx, item_id))

    def assign_item(
        self, session: Session, ctx: AuthContext, item_id: uuid.UUID, user_id: uuid.UUID | None
    ) -> ProjectItemRead:
        require_manager(ctx, "assign items")
        item = item_lifecycle.load(session, ctx, item_id)
        if user_id is not None:
            identity_service.require_org_users(session, ctx, [user_id])
        return ProjectItemRead.model_validate(item_lifecycle.assign(session, ctx, item, user_id))

    def start_item(
        self, session: Session, ctx: AuthContext, item_id: uuid.UUID, *, row_version: int | None = None
    ) -> ProjectItemRead:
        item = item_lifecycle.load(session, ctx, item_id)
        if item.assigned_to != ctx.user_id:
            raise AuthorizationError("only the assignee can start this item")
        updated = item_lifecycle.transition(
            session,
            ctx,
            item,
            action="start",
            from_statuses=("pending",),
            to_status="in_progress",
            expected_version=row_version,
            require_assignee=ctx.user_id,
        )
        return ProjectItemRead.model_validate(updated)

    def complete_item(
        self,
        session: Session,
        ctx: AuthContext,
        item_id: uuid.UUID,
        *,
        row_version: int | None = None,
        notes: str | None = None,
    ) -> ProjectItemRead:
        item = item_lifecycle.load(session, ctx, item_id)
        self._require_owner_or_manager(ctx, item, "complete")
        updated = item_lifecycle.transition(
            session,
            ctx,
            item,
            action="complete",
            from_statuses=("in_progress",),
            to_status="completed",
            expected_version=row_version,
            values=self._notes_values(notes),
        )
        return ProjectItemRead.model_validate(updated)

    def block_item(
        self,
        session: Session,
        ctx: AuthContext,
        item_id: uuid.UUID,
        *,
        row_version: int | None = None,
        notes: str | None = None,
    ) -> ProjectItemRead:
        item = item_lifecycle.load(session, ctx, item_id)
        self._require_owner_or_manager(ctx, item, "block")
        updated = item_lifecycle.transition(
            session,
            ctx,
            item,
            action="block",
            from_statuses=("pending", "in_progress"),
            to_status="blocked",
            expected_version=row_version,
            values=self._notes_values(notes),
        )
        return ProjectItemRead.model_validate(updated)

    def unblock_item(
        self,
        session: Session,
        ctx: AuthContext,
        item_id: uuid.UUID,
        *,
        row_version: int | None = None,
        notes: str | None = None,
    ) -> ProjectItemRead:
        item = item_lifecycle.load(session, ctx, item_id)
        self._require_owner_or_manager(ctx, item, "unblock")
        # an unowned item goes back to the claimable pool
        target = "in_progress" if item.assigned_to is not None else "pending"
        updated = item_lifecycle.transition(
            session,
            ctx,
            item,
            action="unblock",
            from_statuses=("blocked",),
            to_status=target,
            expected_version=row_version,
            values=self._notes_values(notes),
        )
        return ProjectItemRead.model_validate(updated)

    @staticmethod
    def _notes_values(notes: str | None) -> dict[Any, Any]:
        return {EntitiesProjectItem.notes: notes} if notes is not None else {}


project_service = ProjectService()
