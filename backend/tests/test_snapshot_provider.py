"""
Tests for snapshot providers.
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from alerts.providers import DEMO_SNAPSHOTS, HistorySnapshotProvider, StaticSnapshotProvider
from conftest import SHOP, log_payload
from core.errors import DataUnavailable
from db.models import utcnow
from history.store import HistoryStore


@pytest.mark.asyncio
class TestStaticProvider:
    async def test_demo_catalogue(self):
        snapshots = await StaticSnapshotProvider().get_snapshots(SHOP)
        assert snapshots == list(DEMO_SNAPSHOTS)


@pytest.mark.asyncio
class TestHistoryProvider:
    async def test_latest_stock_and_velocity(self, session_factory):
        now = utcnow()
        async with session_factory() as db:
            store = HistoryStore(db)
            await store.create(log_payload(previous_stock=50, new_stock=30, quantity=-20), timestamp=now - timedelta(days=60))
            await store.create(log_payload(previous_stock=30, new_stock=20, quantity=-10), timestamp=now - timedelta(days=3))
            await store.create(log_payload(previous_stock=20, new_stock=6, quantity=-14), timestamp=now - timedelta(days=1))
            await store.create(
                log_payload(product_id="prod-2", product_title="Gadget", change_type="RESTOCK", previous_stock=0, new_stock=40, quantity=40),
                timestamp=now - timedelta(days=2),
            )

        provider = HistorySnapshotProvider(session_factory, lookback_days=4)
        by_id = {s.id: s for s in await provider.get_snapshots(SHOP)}

        assert by_id["prod-1"].stock == 6
        assert by_id["prod-1"].daily_sales_velocity == pytest.approx(24 / 4)
        assert by_id["prod-2"].stock == 40
        assert by_id["prod-2"].daily_sales_velocity == 0

    async def test_empty_shop(self, session_factory):
        provider = HistorySnapshotProvider(session_factory)
        assert await provider.get_snapshots("nobody.myshopify.com") == []

    async def test_unreachable_store(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bare.db'}")
        provider = HistorySnapshotProvider(async_sessionmaker(engine, class_=AsyncSession))
        with pytest.raises(DataUnavailable):
            await provider.get_snapshots(SHOP)
        await engine.dispose()
