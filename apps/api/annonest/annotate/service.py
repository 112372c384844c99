from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import pydantic
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from annonest.annotate.csv_upload import decode_upload, parse_articles_csv
from annonest.annotate.models import AnnotationTask, LabelProject, NewsArticle, NewsEntityLink
from annonest.annotate.repository import (
    AnnotationTaskRepository,
    LabelProjectRepository,
    NewsArticleRepository,
    NewsEntityLinkRepository,
)
from annonest.annotate.schemas import (
    UPLOAD_OWNED_FIELDS,
    ArticleInput,
    EntityLinkCreate,
    EntityLinkRead,
    GenericTaskMetadata,
    NewsTaskMetadata,
    ProjectCreate,
    ProjectRead,
    TaskCreate,
    TaskRead,
    UploadResult,
    metadata_kind_for,
    task_metadata_adapter,
)
from annonest.core.config import get_settings
from annonest.core.database import utcnow
from annonest.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from annonest.datanest.service import entity_service
from annonest.identity.models import User
from annonest.identity.service import identity_service, require_manager
from annonest.metrics import observe_news_upload_rows, observe_work_item_transition
from annonest.platform.security.context import AuthContext
from annonest.services.audit import write_audit_log
from annonest.workflow.lifecycle import WorkItemLifecycle


logger = logging.getLogger("annonest.annotate")

TaskMetadataModel = NewsTaskMetadata | GenericTaskMetadata

task_lifecycle: WorkItemLifecycle[AnnotationTask] = WorkItemLifecycle(
    AnnotationTask,
    status_attr="status",
    item_type="annotation_task",
    resource="task",
)


def parse_metadata(raw: dict[str, Any] | None, project_category: str) -> TaskMetadataModel:
    data = dict(raw or {})
    data.setdefault("kind", metadata_kind_for(project_category))
    try:
        return task_metadata_adapter.validate_python(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "invalid task metadata",
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


@dataclass(slots=True)
class AnnotateService:
    project_repository: LabelProjectRepository = LabelProjectRepository()
    task_repository: AnnotationTaskRepository = AnnotationTaskRepository()
    article_repository: NewsArticleRepository = NewsArticleRepository()
    link_repository: NewsEntityLinkRepository = NewsEntityLinkRepository()

    # projects

    def _status_counts(self, session: Session, project_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, dict[str, int]]:
        if not project_ids:
            return {}
        rows = session.execute(
            select(AnnotationTask.project_id, AnnotationTask.status, func.count())
            .where(AnnotationTask.project_id.in_(list(project_ids)))
            .group_by(AnnotationTask.project_id, AnnotationTask.status)
        ).all()
        counts: dict[uuid.UUID, dict[str, int]] = {}
        for project_id, task_status, total in rows:
            counts.setdefault(project_id, {})[task_status] = int(total)
        return counts

    def _project_read(self, project: LabelProject, counts: dict[str, int] | None = None) -> ProjectRead:
        read = ProjectRead.model_validate(project)
        read.task_counts = counts or {}
        return read

    def create_project(self, session: Session, ctx: AuthContext, dto: ProjectCreate) -> ProjectRead:
        require_manager(ctx, "create projects")
        project = LabelProject(**dto.model_dump(mode="python"), org_id=ctx.org_id, created_by=ctx.user_id)
        session.add(project)
        session.flush()
        write_audit_log(session, ctx, "project.created", "label_project", project.id, {"name": dto.name})
        session.commit()
        session.refresh(project)
        return self._project_read(project)

    def list_projects(self, session: Session, ctx: AuthContext) -> list[ProjectRead]:
        stmt = select(LabelProject)
        if not ctx.is_manager:
            held = select(AnnotationTask.project_id).where(AnnotationTask.assigned_to == ctx.user_id)
            stmt = stmt.where(LabelProject.id.in_(held))
        stmt = self.project_repository.apply_scope_query(stmt, ctx).order_by(LabelProject.created_at.desc())
        projects = session.scalars(stmt).all()
        counts = self._status_counts(session, [project.id for project in projects])
        return [self._project_read(project, counts.get(project.id)) for project in projects]

    def get_project(self, session: Session, ctx: AuthContext, project_id: uuid.UUID) -> ProjectRead:
        project = self.project_repository.get(session, ctx, project_id)
        return self._project_read(project, self._status_counts(session, [project.id]).get(project.id))

    # tasks

    def _category(self, session: Session, ctx: AuthContext, task: AnnotationTask) -> str:
        return self.project_repository.get(session, ctx, task.project_id).project_category

    def to_read(self, task: AnnotationTask, project_category: str) -> TaskRead:
        return TaskRead(
            id=task.id,
            project_id=task.project_id,
            assigned_to=task.assigned_to,
            status=task.status,  # type: ignore[arg-type]
            metadata=parse_metadata(task.task_metadata, project_category),
            row_version=task.row_version,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )

    def _read(self, session: Session, ctx: AuthContext, task: AnnotationTask) -> TaskRead:
        return self.to_read(task, self._category(session, ctx, task))

    def create_task(self, session: Session, ctx: AuthContext, project_id: uuid.UUID, dto: TaskCreate) -> TaskRead:
        require_manager(ctx, "create tasks")
        project = self.project_repository.get(session, ctx, project_id)
        if dto.assigned_to is not None:
            identity_service.require_org_users(session, ctx, [dto.assigned_to])
        metadata = parse_metadata(dto.metadata, project.project_category)

        task = AnnotationTask(
            org_id=ctx.org_id,
            project_id=project.id,
            assigned_to=dto.assigned_to,
            task_metadata=metadata.model_dump(mode="json"),
        )
        session.add(task)
        session.flush()
        write_audit_log(session, ctx, "annotation_task.created", "annotation_task", task.id)
        session.commit()
        session.refresh(task)
        return self.to_read(task, project.project_category)

    def list_tasks(
        self,
        session: Session,
        ctx: AuthContext,
        project_id: uuid.UUID,
        *,
        status: str | None = None,
    ) -> list[TaskRead]:
        project = self.project_repository.get(session, ctx, project_id)
        filters: list[Any] = [AnnotationTask.project_id == project.id]
        if status is not None:
            filters.append(AnnotationTask.status == status)
        if not ctx.is_manager:
            filters.append(
                or_(
                    AnnotationTask.assigned_to == ctx.user_id,
                    and_(AnnotationTask.assigned_to.is_(None), AnnotationTask.status == "pending"),
                )
            )
        rows = self.task_repository.list_scoped(session, ctx, *filters, order_by=AnnotationTask.created_at.asc())
        return [self.to_read(row, project.project_category) for row in rows]

    def get_task(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> TaskRead:
        return self._read(session, ctx, self.task_repository.get(session, ctx, task_id))

    def claim_task(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> TaskRead:
        return self._read(session, ctx, task_lifecycle.claim(session, ctx, task_id))

    def assign_task(self, session: Session, ctx: AuthContext, task_id: uuid.UUID, user_id: uuid.UUID | None) -> TaskRead:
        require_manager(ctx, "assign tasks")
        task = task_lifecycle.load(session, ctx, task_id)
        if user_id is not None:
            identity_service.require_org_users(session, ctx, [user_id])
        return self._read(session, ctx, task_lifecycle.assign(session, ctx, task, user_id))

    def _load_tasks(self, session: Session, ctx: AuthContext, task_ids: Sequence[uuid.UUID]) -> list[AnnotationTask]:
        unique_ids = list(dict.fromkeys(task_ids))
        rows = self.task_repository.list_scoped(session, ctx, AnnotationTask.id.in_(unique_ids))
        by_id = {row.id: row for row in rows}
        missing = [str(task_id) for task_id in unique_ids if task_id not in by_id]
        if missing:
            raise NotFoundError("task not found", details={"task_ids": missing})
        return [by_id[task_id] for task_id in unique_ids]

    def _assign_many(self, session: Session, ctx: AuthContext, pairs: list[tuple[AnnotationTask, User]], action: str) -> None:
        now = utcnow()
        for task, user in pairs:
            session.execute(
                update(AnnotationTask)
                .where(and_(AnnotationTask.id == task.id, AnnotationTask.org_id == ctx.org_id))
                .values(assigned_to=user.id, updated_at=now, row_version=AnnotationTask.row_version + 1)
                .execution_options(synchronize_session=False)
            )
        per_user: dict[str, int] = {}
        for _, user in pairs:
            per_user[str(user.id)] = per_user.get(str(user.id), 0) + 1
        write_audit_log(
            session,
            ctx,
            f"annotation_task.{action}",
            "annotation_task",
            "bulk",
            {"task_ids": [str(task.id) for task, _ in pairs], "per_user": per_user},
        )
        session.commit()
        observe_work_item_transition("annotation_task", action, "success")

    def bulk_assign(
        self, session: Session, ctx: AuthContext, task_ids: Sequence[uuid.UUID], user_id: uuid.UUID
    ) -> list[TaskRead]:
        require_manager(ctx, "assign tasks")
        (user,) = identity_service.require_org_users(session, ctx, [user_id])
        tasks = self._load_tasks(session, ctx, task_ids)
        self._assign_many(session, ctx, [(task, user) for task in tasks], "bulk_assign")
        return [self.get_task(session, ctx, task.id) for task in tasks]

    def assign_evenly(
        self,
        session: Session,
        ctx: AuthContext,
        task_ids: Sequence[uuid.UUID],
        user_ids: Sequence[uuid.UUID],
    ) -> list[TaskRead]:
        """Round-robin ``task_ids`` over ``user_ids`` in the order given."""

        require_manager(ctx, "assign tasks")
        users = identity_service.require_org_users(session, ctx, user_ids)
        if not users:
            raise ValidationError("at least one user is required")
        tasks = self._load_tasks(session, ctx, task_ids)
        pairs = [(task, users[index % len(users)]) for index, task in enumerate(tasks)]
        self._assign_many(session, ctx, pairs, "assign_evenly")
        return [self.get_task(session, ctx, task.id) for task in tasks]

    def _merge_metadata(
        self,
        task: AnnotationTask,
        project_category: str,
        patch: dict[str, Any] | None,
    ) -> TaskMetadataModel:
        current = parse_metadata(task.task_metadata, project_category).model_dump(mode="json")
        if patch:
            if "kind" in patch and patch["kind"] != current["kind"]:
                raise ValidationError(f"metadata kind must stay {current['kind']}")
            if current["kind"] == "news":
                patch = {key: value for key, value in patch.items() if key not in UPLOAD_OWNED_FIELDS}
            current.update(patch)
        return parse_metadata(current, project_category)

    def start_task(
        self, session: Session, ctx: AuthContext, task_id: uuid.UUID, *, row_version: int | None = None
    ) -> TaskRead:
        task = task_lifecycle.load(session, ctx, task_id)
        if task.assigned_to != ctx.user_id:
            raise AuthorizationError("only the assignee can start this task")
        updated = task_lifecycle.transition(
            session,
            ctx,
            task,
            action="start",
            from_statuses=("pending",),
            to_status="in_progress",
            expected_version=row_version,
            require_assignee=ctx.user_id,
        )
        return self._read(session, ctx, updated)

    def submit_task(
        self,
        session: Session,
        ctx: AuthContext,
        task_id: uuid.UUID,
        *,
        row_version: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TaskRead:
        task = task_lifecycle.load(session, ctx, task_id)
        if task.assigned_to != ctx.user_id:
            raise AuthorizationError("only the assignee can submit this task for review")
        category = self._category(session, ctx, task)
        merged = self._merge_metadata(task, category, metadata)
        updated = task_lifecycle.transition(
            session,
            ctx,
            task,
            action="submit",
            from_statuses=("in_progress",),
            to_status="review",
            expected_version=row_version,
            values={AnnotationTask.task_metadata: merged.model_dump(mode="json")},
            require_assignee=ctx.user_id,
        )
        return self.to_read(updated, category)

    def complete_task(
        self,
        session: Session,
        ctx: AuthContext,
        task_id: uuid.UUID,
        *,
        row_version: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TaskRead:
        task = task_lifecycle.load(session, ctx, task_id)
        if not ctx.is_manager:
            observe_work_item_transition("annotation_task", "complete", "forbidden")
            raise AuthorizationError(f"role {ctx.role} cannot approve task completion")
        category = self._category(session, ctx, task)
        merged = self._merge_metadata(task, category, metadata)
        problem = merged.completion_problem()
        if problem is not None:
            raise ValidationError(problem)
        updated = task_lifecycle.transition(
            session,
            ctx,
            task,
            action="complete",
            from_statuses=("in_progress", "review"),
            to_status="completed",
            expected_version=row_version,
            values={AnnotationTask.task_metadata: merged.model_dump(mode="json")},
        )
        return self.to_read(updated, category)

    def request_changes(
        self, session: Session, ctx: AuthContext, task_id: uuid.UUID, *, row_version: int | None = None
    ) -> TaskRead:
        require_manager(ctx, "request changes")
        task = task_lifecycle.load(session, ctx, task_id)
        updated = task_lifecycle.transition(
            session,
            ctx,
            task,
            action="request_changes",
            from_statuses=("review",),
            to_status="in_progress",
            expected_version=row_version,
        )
        return self._read(session, ctx, updated)

    def save_metadata(
        self,
        session: Session,
        ctx: AuthContext,
        task_id: uuid.UUID,
        *,
        row_version: int,
        metadata: dict[str, Any],
    ) -> TaskRead:
        task = task_lifecycle.load(session, ctx, task_id)
        if task.status == "completed":
            if not ctx.is_manager:
                raise AuthorizationError("completed tasks can only be edited by a manager")
        elif not ctx.is_manager and task.assigned_to != ctx.user_id:
            raise AuthorizationError("only the assignee or a manager can edit this task")

        category = self._category(session, ctx, task)
        merged = self._merge_metadata(task, category, metadata)
        updated = task_lifecycle.transition(
            session,
            ctx,
            task,
            action="save_metadata",
            from_statuses=(task.status,),
            to_status=None,
            expected_version=row_version,
            values={AnnotationTask.task_metadata: merged.model_dump(mode="json")},
        )
        return self.to_read(updated, category)

    # uploads

    def _upload_target(
        self, session: Session, ctx: AuthContext, project_id: uuid.UUID, assignee_ids: Sequence[uuid.UUID]
    ) -> tuple[LabelProject, list[User]]:
        require_manager(ctx, "upload articles")
        project = self.project_repository.get(session, ctx, project_id)
        if project.project_category != "news":
            raise ValidationError("articles can only be uploaded to news projects")
        return project, identity_service.require_org_users(session, ctx, assignee_ids)

    def upload_csv(
        self,
        session: Session,
        ctx: AuthContext,
        project_id: uuid.UUID,
        raw: bytes,
        assignee_ids: Sequence[uuid.UUID],
    ) -> UploadResult:
        if len(raw) > get_settings().upload_max_bytes:
            raise ValidationError("upload is too large", details={"max_bytes": get_settings().upload_max_bytes})
        project, assignees = self._upload_target(session, ctx, project_id, assignee_ids)
        parsed = parse_articles_csv(decode_upload(raw))
        return self._create_from_articles(session, ctx, project, assignees, parsed.articles, parsed.skipped_rows)

    def upload_articles(
        self,
        session: Session,
        ctx: AuthContext,
        project_id: uuid.UUID,
        articles: Sequence[ArticleInput],
        assignee_ids: Sequence[uuid.UUID],
    ) -> UploadResult:
        project, assignees = self._upload_target(session, ctx, project_id, assignee_ids)
        valid = [article for article in articles if article.headline.strip() and article.raw_text.strip()]
        return self._create_from_articles(session, ctx, project, assignees, valid, len(articles) - len(valid))

    def _create_from_articles(
        self,
        session: Session,
        ctx: AuthContext,
        project: LabelProject,
        assignees: list[User],
        articles: Sequence[ArticleInput],
        skipped_rows: int,
    ) -> UploadResult:
        """One task per (article, assignee) pair, or one unassigned task per article."""

        if not articles:
            observe_news_upload_rows(0, skipped_rows)
            raise ValidationError("no valid articles found", details={"skipped_rows": skipped_rows})

        targets: list[uuid.UUID | None] = [user.id for user in assignees] or [None]
        tasks_created = 0
        for article in articles:
            news = NewsArticle(
                org_id=ctx.org_id,
                headline=article.headline.strip(),
                source_name=article.source_name,
                publish_date=article.publish_date,
                url=article.url,
                raw_text=article.raw_text.strip(),
                cleaned_text=article.cleaned_text,
                language=article.language,
                created_by=ctx.user_id,
            )
            session.add(news)
            session.flush()

            metadata = NewsTaskMetadata(
                headline=news.headline,
                url=news.url,
                source_name=news.source_name,
                publish_date=news.publish_date,
                raw_text=news.raw_text,
                cleaned_text=news.cleaned_text,
                language=news.language,
                news_id=news.id,
                relevance_status="not_relevant" if article.article_state == "not_relevant" else None,
            ).model_dump(mode="json")
            task_status = "pending" if article.article_state == "pending" else "completed"

            for user_id in targets:
                session.add(
                    AnnotationTask(
                        org_id=ctx.org_id,
                        project_id=project.id,
                        assigned_to=user_id,
                        status=task_status,
                        task_metadata=dict(metadata),
                    )
                )
                tasks_created += 1

        write_audit_log(
            session,
            ctx,
            "news.uploaded",
            "label_project",
            project.id,
            {
                "articles": len(articles),
                "tasks_created": tasks_created,
                "skipped_rows": skipped_rows,
                "assignees": [str(user.id) for user in assignees],
            },
        )
        session.commit()
        observe_news_upload_rows(len(articles), skipped_rows)
        logger.info(
            "news.uploaded",
            extra={
                "project_id": str(project.id),
                "tasks_created": tasks_created,
                "skipped_rows": skipped_rows,
                "org_id": str(ctx.org_id),
            },
        )

        message = f"Uploaded {len(articles)} articles and created {tasks_created} tasks"
        if skipped_rows:
            message += f", skipped {skipped_rows} rows"
        return UploadResult(
            articles=len(articles),
            tasks_created=tasks_created,
            skipped_rows=skipped_rows,
            message=message,
        )

    # news entity links

    def _news_id(self, session: Session, ctx: AuthContext, task: AnnotationTask) -> uuid.UUID:
        metadata = parse_metadata(task.task_metadata, self._category(session, ctx, task))
        if not isinstance(metadata, NewsTaskMetadata) or not metadata.news_id:
            raise ValidationError("entities can only be linked to news tasks")
        news = self.article_repository.get(session, ctx, metadata.news_id)
        return news.id

    def link_entity(self, session: Session, ctx: AuthContext, task_id: uuid.UUID, dto: EntityLinkCreate) -> EntityLinkRead:
        task = self.task_repository.get(session, ctx, task_id)
        if not ctx.is_manager and task.assigned_to != ctx.user_id:
            raise AuthorizationError("only the assignee or a manager can tag entities on this task")
        news_id = self._news_id(session, ctx, task)
        entity_service.get_entity(session, ctx, dto.entity_type, dto.entity_id)

        link = NewsEntityLink(
            org_id=ctx.org_id,
            news_id=news_id,
            entity_type=dto.entity_type,
            entity_id=dto.entity_id,
            created_by=ctx.user_id,
        )
        session.add(link)
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("entity is already linked to this article") from exc
        write_audit_log(
            session,
            ctx,
            "news.entity_linked",
            dto.entity_type,
            dto.entity_id,
            {"news_id": str(news_id), "task_id": str(task.id)},
        )
        session.commit()
        session.refresh(link)
        return EntityLinkRead.model_validate(link)

    def list_entity_links(self, session: Session, ctx: AuthContext, task_id: uuid.UUID) -> list[EntityLinkRead]:
        task = self.task_repository.get(session, ctx, task_id)
        news_id = self._news_id(session, ctx, task)
        rows = self.link_repository.list_scoped(
            session, ctx, NewsEntityLink.news_id == news_id, order_by=NewsEntityLink.created_at.asc()
        )
        return [EntityLinkRead.model_validate(row) for row in rows]

    def unlink_entity(self, session: Session, ctx: AuthContext, task_id: uuid.UUID, link_id: uuid.UUID) -> None:
        task = self.task_repository.get(session, ctx, task_id)
        if not ctx.is_manager and task.assigned_to != ctx.user_id:
            raise AuthorizationError("only the assignee or a manager can untag entities on this task")
        news_id = self._news_id(session, ctx, task)
        link = self.link_repository.get(session, ctx, link_id)
        if link.news_id != news_id:
            raise NotFoundError("entity link not found")
        session.delete(link)
        write_audit_log(
            session,
            ctx,
            "news.entity_unlinked",
            link.entity_type,
            link.entity_id,
            {"news_id": str(news_id), "task_id": str(task.id)},
        )
        session.commit()


annotate_service = AnnotateService()
