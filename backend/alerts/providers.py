"""
Stock snapshot providers for the alert scheduler.

A provider returns the current {id, name, stock, daily velocity} of every
product in a shop. Failures surface as DataUnavailable so the scheduler can
skip the cycle and keep ticking.
"""

from collections.abc import Sequence
from datetime import timedelta
from typing import Protocol

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alerts.models import ProductSnapshot
from core.errors import DataUnavailable
from db.models import InventoryHistory, utcnow

logger = structlog.get_logger()


class StockSnapshotProvider(Protocol):
    async def get_snapshots(self, shop: str) -> list[ProductSnapshot]: ...


DEMO_SNAPSHOTS = (
    ProductSnapshot(id="1", name="Premium Widget Pro", stock=0, daily_sales_velocity=2.5),
    ProductSnapshot(id="2", name="Essential Tool Kit", stock=1, daily_sales_velocity=1.2),
    ProductSnapshot(id="3", name="Basic Component", stock=3, daily_sales_velocity=0.8),
    ProductSnapshot(id="4", name="Advanced Module", stock=4, daily_sales_velocity=1.5),
)


class StaticSnapshotProvider:
    """Fixed catalogue, the same for every shop. Used for demos and tests."""

    def __init__(self, snapshots: Sequence[ProductSnapshot] = DEMO_SNAPSHOTS):
        self._snapshots = tuple(snapshots)

    async def get_snapshots(self, shop: str) -> list[ProductSnapshot]:
        return list(self._snapshots)


class HistorySnapshotProvider:
    """Derive snapshots from the inventory log.

    Stock is the ``new_stock`` of the most recent entry per product; velocity
    is units sold over the lookback window divided by its length in days.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], lookback_days: int = 28):
        self._session_factory = session_factory
        self.lookback_days = max(1, lookback_days)

    async def get_snapshots(self, shop: str) -> list[ProductSnapshot]:
        try:
            async with self._session_factory() as db:
                return await self._load(db, shop)
        except SQLAlchemyError as exc:
            raise DataUnavailable(f"inventory history unavailable for {shop}") from exc

    async def _load(self, db: AsyncSession, shop: str) -> list[ProductSnapshot]:
        latest_sub = (
            select(
                InventoryHistory.product_id,
                func.max(InventoryHistory.seq).label("max_seq"),
            )
            .where(InventoryHistory.shop == shop)
            .group_by(InventoryHistory.product_id)
            .subquery()
        )
        latest_result = await db.execute(
            select(
                InventoryHistory.product_id,
                InventoryHistory.product_title,
                InventoryHistory.new_stock,
            )
            .join(latest_sub, InventoryHistory.seq == latest_sub.c.max_seq)
            .order_by(InventoryHistory.product_title, InventoryHistory.product_id)
        )
        latest_rows = latest_result.all()
        if not latest_rows:
            return []

        cutoff = utcnow() - timedelta(days=self.lookback_days)
        sales_result = await db.execute(
            select(
                InventoryHistory.product_id,
                func.coalesce(func.sum(-InventoryHistory.quantity), 0).label("units_sold"),
            )
            .where(
                InventoryHistory.shop == shop,
                InventoryHistory.change_type == "SALE",
                InventoryHistory.timestamp >= cutoff,
            )
            .group_by(InventoryHistory.product_id)
        )
        sold_by_product = {row.product_id: float(row.units_sold or 0) for row in sales_result.all()}

        snapshots = []
        for row in latest_rows:
            units_sold = max(sold_by_product.get(row.product_id, 0.0), 0.0)
            snapshots.append(
                ProductSnapshot(
                    id=row.product_id,
                    name=row.product_title,
                    stock=max(int(row.new_stock), 0),
                    daily_sales_velocity=units_sold / self.lookback_days,
                )
            )
        logger.debug("snapshots.loaded", shop=shop, products=len(snapshots))
        return snapshots
