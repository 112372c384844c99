from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session

from annonest.core.auth import get_auth_context
from annonest.core.database import get_db
from annonest.datanest.schemas import (
    EntitiesProjectCreate,
    EntitiesProjectRead,
    ItemStatus,
    ProjectItemAssignRequest,
    ProjectItemCreate,
    ProjectItemRead,
    ProjectItemTransitionRequest,
    ProjectMemberCreate,
    ProjectMemberRead,
    RelationshipCreate,
    RelationshipRead,
)
from annonest.datanest.service import entity_service, project_service
from annonest.platform.security.context import AuthContext


router = APIRouter(prefix="/api/datanest", tags=["datanest"])


@router.get("/entities/{entity_type}")
def list_entities(
    entity_type: str,
    q: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[dict[str, Any]]:
    return entity_service.list_entities(db, ctx, entity_type, search=q, limit=limit, offset=offset)


@router.post("/entities/{entity_type}", status_code=status.HTTP_201_CREATED)
def create_entity(
    entity_type: str,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return entity_service.create_entity(db, ctx, entity_type, payload)


@router.get("/entities/{entity_type}/{entity_id}")
def get_entity(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return entity_service.read(db, ctx, entity_type, entity_id)


@router.patch("/entities/{entity_type}/{entity_id}")
def update_entity(
    entity_type: str,
    entity_id: uuid.UUID,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return entity_service.update_entity(db, ctx, entity_type, entity_id, payload)


@router.delete("/entities/{entity_type}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entity(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    entity_service.delete_entity(db, ctx, entity_type, entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/relationships", response_model=RelationshipRead, status_code=status.HTTP_201_CREATED)
def create_relationship(
    payload: RelationshipCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> RelationshipRead:
    return entity_service.create_relationship(db, ctx, payload)


@router.get("/relationships", response_model=list[RelationshipRead])
def list_relationships(
    entity_type: str | None = Query(default=None),
    entity_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[RelationshipRead]:
    return entity_service.list_relationships(db, ctx, entity_type=entity_type, entity_id=entity_id)


@router.delete("/relationships/{relationship_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_relationship(
    relationship_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    entity_service.delete_relationship(db, ctx, relationship_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/projects", response_model=EntitiesProjectRead, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: EntitiesProjectCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> EntitiesProjectRead:
    return project_service.create_project(db, ctx, payload)


@router.get("/projects", response_model=list[EntitiesProjectRead])
def list_projects(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[EntitiesProjectRead]:
    return project_service.list_projects(db, ctx)


@router.get("/projects/{project_id}", response_model=EntitiesProjectRead)
def get_project(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> EntitiesProjectRead:
    return project_service.get_project(db, ctx, project_id)


@router.post("/projects/{project_id}/members", response_model=ProjectMemberRead, status_code=status.HTTP_201_CREATED)
def add_member(
    project_id: uuid.UUID,
    payload: ProjectMemberCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectMemberRead:
    return project_service.add_member(db, ctx, project_id, payload)


@router.get("/projects/{project_id}/members", response_model=list[ProjectMemberRead])
def list_members(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ProjectMemberRead]:
    return project_service.list_members(db, ctx, project_id)


@router.post("/projects/{project_id}/items", response_model=ProjectItemRead, status_code=status.HTTP_201_CREATED)
def add_item(
    project_id: uuid.UUID,
    payload: ProjectItemCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    return project_service.add_item(db, ctx, project_id, payload)


@router.get("/projects/{project_id}/items", response_model=list[ProjectItemRead])
def list_items(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ProjectItemRead]:
    return project_service.list_items(db, ctx, project_id)


@router.get("/my-work", response_model=list[ProjectItemRead])
def my_work(
    item_status: ItemStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[ProjectItemRead]:
    return project_service.my_work(db, ctx, status=item_status)


@router.post("/items/{item_id}/claim", response_model=ProjectItemRead)
def claim_item(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    return project_service.claim_item(db, ctx, item_id)


@router.post("/items/{item_id}/assign", response_model=ProjectItemRead)
def assign_item(
    item_id: uuid.UUID,
    payload: ProjectItemAssignRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    return project_service.assign_item(db, ctx, item_id, payload.user_id)


@router.post("/items/{item_id}/start", response_model=ProjectItemRead)
def start_item(
    item_id: uuid.UUID,
    payload: ProjectItemTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    payload = payload or ProjectItemTransitionRequest()
    return project_service.start_item(db, ctx, item_id, row_version=payload.row_version)


@router.post("/items/{item_id}/complete", response_model=ProjectItemRead)
def complete_item(
    item_id: uuid.UUID,
    payload: ProjectItemTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    payload = payload or ProjectItemTransitionRequest()
    return project_service.complete_item(db, ctx, item_id, row_version=payload.row_version, notes=payload.notes)


@router.post("/items/{item_id}/block", response_model=ProjectItemRead)
def block_item(
    item_id: uuid.UUID,
    payload: ProjectItemTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    payload = payload or ProjectItemTransitionRequest()
    return project_service.block_item(db, ctx, item_id, row_version=payload.row_version, notes=payload.notes)


@router.post("/items/{item_id}/unblock", response_model=ProjectItemRead)
def unblock_item(
    item_id: uuid.UUID,
    payload: ProjectItemTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> ProjectItemRead:
    payload = payload or ProjectItemTransitionRequest()
    return project_service.unblock_item(db, ctx, item_id, row_version=payload.row_version, notes=payload.notes)
