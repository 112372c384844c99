from celery import Celery

from annonest.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "annonest_api",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["annonest.locks.tasks"],
)

if settings.entity_lock_sweep_enabled:
    celery_app.conf.beat_schedule = {
        "sweep-expired-entity-locks": {
            "task": "annonest.locks.sweep_expired",
            "schedule": float(settings.entity_lock_sweep_interval_seconds),
        }
    }
