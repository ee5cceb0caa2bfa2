"""Retention cleanup for the inventory history log."""

from datetime import datetime, timedelta

import structlog

from db.models import utcnow
from history.store import HistoryStore

logger = structlog.get_logger()

DEFAULT_DAYS_TO_KEEP = 90


def retention_cutoff(days_to_keep: int = DEFAULT_DAYS_TO_KEEP, now: datetime | None = None) -> datetime:
    if days_to_keep < 0:
        raise ValueError("days_to_keep must be non-negative")
    return (now or utcnow()) - timedelta(days=days_to_keep)


async def cleanup_old_entries(
    store: HistoryStore,
    shop: str,
    days_to_keep: int = DEFAULT_DAYS_TO_KEEP,
    now: datetime | None = None,
) -> int:
    """Delete entries older than ``days_to_keep`` days. Returns rows removed."""
    cutoff = retention_cutoff(days_to_keep, now)
    removed = await store.delete_many(shop, cutoff)
    logger.info("history.retention_cleanup", shop=shop, days_to_keep=days_to_keep, removed=removed)
    return removed
