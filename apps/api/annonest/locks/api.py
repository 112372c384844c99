from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from annonest.core.auth import get_auth_context
from annonest.core.database import get_db
from annonest.locks.schemas import LockReleaseBeacon, LockStatusRead
from annonest.locks.service import entity_lock_service
from annonest.platform.security.context import AuthContext


router = APIRouter(prefix="/api/locks", tags=["locks"])


@router.post("/release-beacon", status_code=status.HTTP_204_NO_CONTENT)
def release_beacon(
    payload: LockReleaseBeacon,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    entity_lock_service.release_own(db, ctx, payload.entity_type, payload.entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{entity_type}/{entity_id}", response_model=LockStatusRead)
def read_lock(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> LockStatusRead:
    return entity_lock_service.read(db, ctx, entity_type, entity_id)


@router.post("/{entity_type}/{entity_id}", response_model=LockStatusRead)
def acquire_lock(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> LockStatusRead:
    return entity_lock_service.acquire(db, ctx, entity_type, entity_id)


@router.post("/{entity_type}/{entity_id}/heartbeat", response_model=LockStatusRead)
def heartbeat_lock(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> LockStatusRead:
    return entity_lock_service.heartbeat(db, ctx, entity_type, entity_id)


@router.delete("/{entity_type}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
def release_lock(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    entity_lock_service.release(db, ctx, entity_type, entity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
