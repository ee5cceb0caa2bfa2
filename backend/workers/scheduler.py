"""Shop-aware scheduler helpers for Celery beat fan-out."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.scheduler.dispatch_active_shops",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def dispatch_active_shops(
    self,
    task_name: str,
    task_kwargs: dict | None = None,
    active_within_days: int | None = None,
):
    """
    Dispatch a shop-scoped task to every shop in the inventory log.

    With ``active_within_days`` only shops that logged a change in that many
    days are included. Each dispatched call gets ``shop`` added to its kwargs.
    """
    from core.config import get_settings
    from db.models import utcnow
    from history.store import HistoryStore

    run_id = self.request.id or "manual"
    payload = dict(task_kwargs or {})

    if not task_name.startswith("workers."):
        return {"status": "failed", "reason": "invalid_task_name", "task_name": task_name}

    active_since = utcnow() - timedelta(days=active_within_days) if active_within_days else None

    async def _dispatch():
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession)
            async with async_session() as db:
                shops = await HistoryStore(db).list_shops(active_since=active_since)

            dispatched = 0
            for shop in shops:
                kwargs = dict(payload)
                kwargs["shop"] = shop
                celery_app.send_task(task_name, kwargs=kwargs)
                dispatched += 1

            summary = {
                "status": "success",
                "task_name": task_name,
                "shop_count": len(shops),
                "dispatched_count": dispatched,
                "active_within_days": active_within_days,
                "triggered_at": datetime.now(timezone.utc).isoformat(),
                "run_id": run_id,
            }
            logger.info("scheduler.dispatch_complete", **summary)
            return summary
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_dispatch())
    except Exception as exc:  # noqa: BLE001
        logger.error("scheduler.dispatch_failed", task_name=task_name, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
