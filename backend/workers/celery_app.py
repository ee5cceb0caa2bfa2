"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "stockpulse",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.retention", "workers.scheduler"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.retention.*": {"queue": "maintenance"},
        "workers.scheduler.*": {"queue": "maintenance"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Jobs fan out across every shop in the log via workers.scheduler.dispatch_active_shops.
    beat_schedule={
        # ── Retention ──────────────────────────────────────────────
        "cleanup-inventory-history-nightly": {
            "task": "workers.scheduler.dispatch_active_shops",
            "schedule": crontab(hour=3, minute=15),
            "kwargs": {
                "task_name": "workers.retention.cleanup_inventory_history",
                "task_kwargs": {"days_to_keep": settings.history_retention_days},
            },
            "options": {"queue": "maintenance"},
        },
    },
)
