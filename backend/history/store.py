"""
History Store — append-only persistence for inventory log entries.

Each ``create`` runs in its own transaction, so concurrent writers never
need cross-entry locking. Rows are only ever removed by ``delete_many``
(retention cleanup).
"""

from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DataUnavailable, PersistenceError
from db.models import InventoryHistory, utcnow
from history.entries import CreateInventoryLog, InventoryLogEntry

logger = structlog.get_logger()


class HistoryStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        data: CreateInventoryLog | dict,
        *,
        timestamp: datetime | None = None,
    ) -> InventoryLogEntry:
        """Persist one entry and return it with id and timestamp assigned.

        ``timestamp`` overrides the creation time; only importers of
        historical data pass it.
        """
        payload = data if isinstance(data, CreateInventoryLog) else CreateInventoryLog.model_validate(data)
        row = InventoryHistory(**payload.model_dump(), timestamp=timestamp or utcnow())
        try:
            self.db.add(row)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(
                "history.create_failed",
                shop=payload.shop,
                product_id=payload.product_id,
                change_type=payload.change_type,
                error=str(exc),
            )
            raise PersistenceError(f"could not record {payload.change_type} for {payload.product_id}") from exc

        logger.debug("history.created", shop=row.shop, entry_id=row.id, change_type=row.change_type)
        return InventoryLogEntry.model_validate(row)

    async def delete_many(self, shop: str, older_than: datetime) -> int:
        """Remove entries for ``shop`` with timestamp strictly before ``older_than``."""
        try:
            result = await self.db.execute(
                delete(InventoryHistory).where(
                    InventoryHistory.shop == shop,
                    InventoryHistory.timestamp < older_than,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"retention cleanup failed for {shop}") from exc
        return result.rowcount or 0

    async def list_shops(self, active_since: datetime | None = None) -> list[str]:
        """Shops with at least one entry, optionally only those written to since ``active_since``."""
        query = select(InventoryHistory.shop).distinct().order_by(InventoryHistory.shop)
        if active_since is not None:
            query = query.where(InventoryHistory.timestamp >= active_since)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as exc:
            raise DataUnavailable("inventory history unavailable") from exc
        return [row.shop for row in result.all()]
