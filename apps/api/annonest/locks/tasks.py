from __future__ import annotations

from annonest.core.celery_app import celery_app
from annonest.core.database import SessionLocal
from annonest.locks.service import entity_lock_service


@celery_app.task(name="annonest.locks.sweep_expired")
def sweep_expired_locks() -> int:
    session = SessionLocal()
    try:
        return entity_lock_service.sweep_expired(session)
    finally:
        session.close()
