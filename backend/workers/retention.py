"""
Retention Worker — Delete inventory history older than the retention period.

Schedule: crontab(hour=3, minute=15), fanned out per shop
Queue: maintenance
"""

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.retention.cleanup_inventory_history",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def cleanup_inventory_history(self, shop: str, days_to_keep: int = 90):
    """
    Nightly job: remove log entries for ``shop`` older than ``days_to_keep`` days.
    """
    run_id = self.request.id or "manual"
    logger.info("retention.started", shop=shop, days_to_keep=days_to_keep, run_id=run_id)

    async def _cleanup():
        from core.config import get_settings
        from history.retention import cleanup_old_entries
        from history.store import HistoryStore

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with async_session() as db:
                removed = await cleanup_old_entries(HistoryStore(db), shop, days_to_keep)
        finally:
            await engine.dispose()

        summary = {
            "status": "success",
            "shop": shop,
            "days_to_keep": days_to_keep,
            "removed": removed,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "run_id": run_id,
        }
        logger.info("retention.completed", **summary)
        return summary

    try:
        return asyncio.run(_cleanup())
    except Exception as exc:  # noqa: BLE001
        logger.error("retention.failed", shop=shop, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
