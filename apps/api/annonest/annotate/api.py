from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from annonest.annotate.schemas import (
    ArticlesUploadRequest,
    AssignEvenlyRequest,
    BulkAssignRequest,
    EntityLinkCreate,
    EntityLinkRead,
    ProjectCreate,
    ProjectRead,
    TaskAssignRequest,
    TaskCreate,
    TaskMetadataUpdate,
    TaskRead,
    TaskStatus,
    TaskTransitionRequest,
    UploadResult,
)
from annonest.annotate.service import annotate_service
from annonest.core.auth import get_auth_context
from annonest.core.database import get_db
from annonest.platform.security.context import AuthContext


router = APIRouter(prefix="/api/annotate", tags=["annotate"])


@router.post("/projects", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectRead:
    return annotate_service.create_project(db, ctx, payload)


@router.get("/projects", response_model=list[ProjectRead])
def list_projects(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ProjectRead]:
    return annotate_service.list_projects(db, ctx)


@router.get("/projects/{project_id}", response_model=ProjectRead)
def get_project(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectRead:
    return annotate_service.get_project(db, ctx, project_id)


@router.get("/projects/{project_id}/tasks", response_model=list[TaskRead])
def list_tasks(
    project_id: uuid.UUID,
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[TaskRead]:
    return annotate_service.list_tasks(db, ctx, project_id, status=task_status)


@router.post("/projects/{project_id}/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: uuid.UUID,
    payload: TaskCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return annotate_service.create_task(db, ctx, project_id, payload)


@router.post("/projects/{project_id}/upload", response_model=UploadResult, status_code=status.HTTP_201_CREATED)
def upload_csv(
    project_id: uuid.UUID,
    file: UploadFile = File(...),
    assignees: list[uuid.UUID] = Form(default=[]),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> UploadResult:
    raw = file.file.read()
    return annotate_service.upload_csv(db, ctx, project_id, raw, assignees)


@router.post("/projects/{project_id}/articles", response_model=UploadResult, status_code=status.HTTP_201_CREATED)
def upload_articles(
    project_id: uuid.UUID,
    payload: ArticlesUploadRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> UploadResult:
    return annotate_service.upload_articles(db, ctx, project_id, payload.articles, payload.assignees)


@router.post("/tasks/bulk-assign", response_model=list[TaskRead])
def bulk_assign(
    payload: BulkAssignRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[TaskRead]:
    return annotate_service.bulk_assign(db, ctx, payload.task_ids, payload.user_id)


@router.post("/tasks/assign-evenly", response_model=list[TaskRead])
def assign_evenly(
    payload: AssignEvenlyRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[TaskRead]:
    return annotate_service.assign_evenly(db, ctx, payload.task_ids, payload.user_ids)


@router.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return annotate_service.get_task(db, ctx, task_id)


@router.post("/tasks/{task_id}/claim", response_model=TaskRead)
def claim_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return annotate_service.claim_task(db, ctx, task_id)


@router.post("/tasks/{task_id}/assign", response_model=TaskRead)
def assign_task(
    task_id: uuid.UUID,
    payload: TaskAssignRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return annotate_service.assign_task(db, ctx, task_id, payload.user_id)


@router.post("/tasks/{task_id}/start", response_model=TaskRead)
def start_task(
    task_id: uuid.UUID,
    payload: TaskTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    payload = payload or TaskTransitionRequest()
    return annotate_service.start_task(db, ctx, task_id, row_version=payload.row_version)


@router.post("/tasks/{task_id}/submit", response_model=TaskRead)
def submit_task(
    task_id: uuid.UUID,
    payload: TaskTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    payload = payload or TaskTransitionRequest()
    return annotate_service.submit_task(db, ctx, task_id, row_version=payload.row_version, metadata=payload.metadata)


@router.post("/tasks/{task_id}/complete", response_model=TaskRead)
def complete_task(
    task_id: uuid.UUID,
    payload: TaskTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    payload = payload or TaskTransitionRequest()
    return annotate_service.complete_task(db, ctx, task_id, row_version=payload.row_version, metadata=payload.metadata)


@router.post("/tasks/{task_id}/request-changes", response_model=TaskRead)
def request_changes(
    task_id: uuid.UUID,
    payload: TaskTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    payload = payload or TaskTransitionRequest()
    return annotate_service.request_changes(db, ctx, task_id, row_version=payload.row_version)


@router.patch("/tasks/{task_id}/metadata", response_model=TaskRead)
def save_metadata(
    task_id: uuid.UUID,
    payload: TaskMetadataUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskRead:
    return annotate_service.save_metadata(db, ctx, task_id, row_version=payload.row_version, metadata=payload.metadata)


@router.get("/tasks/{task_id}/entities", response_model=list[EntityLinkRead])
def list_entity_links(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[EntityLinkRead]:
    return annotate_service.list_entity_links(db, ctx, task_id)


@router.post("/tasks/{task_id}/entities", response_model=EntityLinkRead, status_code=status.HTTP_201_CREATED)
def link_entity(
    task_id: uuid.UUID,
    payload: EntityLinkCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> EntityLinkRead:
    return annotate_service.link_entity(db, ctx, task_id, payload)


@router.delete("/tasks/{task_id}/entities/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def unlink_entity(
    task_id: uuid.UUID,
    link_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    annotate_service.unlink_entity(db, ctx, task_id, link_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
