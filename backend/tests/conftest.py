"""
Test Configuration — Fixtures for async DB, test client, and alert registry.

Each test gets its own SQLite file provisioned with the history schema, so
app code can commit freely without leaking state between tests.
"""

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from alerts.providers import StaticSnapshotProvider
from alerts.scheduler import AlertScheduler, SchedulerRegistry
from alerts.sinks import InMemorySink
from api.deps import get_current_user, get_db, get_scheduler_registry
from api.main import app
from db.schema import provision_schema
from history.store import HistoryStore

SHOP = "test-shop.myshopify.com"
OTHER_SHOP = "other-shop.myshopify.com"


@pytest.fixture
async def test_engine(tmp_path):
    """Create a test database engine and provision the schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await provision_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(test_db):
    return HistoryStore(test_db)


@pytest.fixture
def mock_user():
    """Mock authenticated user scoped to SHOP."""
    return {
        "sub": "test-user-id",
        "email": "test@stockpulse.app",
        "shop": SHOP,
    }


@pytest.fixture
async def alert_registry():
    """Registry serving the demo catalogue into in-memory sinks."""

    def factory(shop: str) -> AlertScheduler:
        return AlertScheduler(shop, StaticSnapshotProvider(), InMemorySink(), interval=3600)

    registry = SchedulerRegistry(factory)
    yield registry
    await registry.stop_all()


@pytest.fixture
async def client(test_db, mock_user, alert_registry):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_scheduler_registry] = lambda: alert_registry

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def log_payload(**overrides) -> dict:
    """A valid SALE entry payload for SHOP."""
    payload = {
        "shop": SHOP,
        "product_id": "prod-1",
        "product_title": "Premium Widget Pro",
        "change_type": "SALE",
        "previous_stock": 10,
        "new_stock": 8,
        "quantity": -2,
        "source": "ADMIN",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def seeded_history(store):
    """Seven entries across two products, one old and one from another shop.

    Returned newest first, the order the query engine should produce.
    """
    now = datetime(2026, 3, 10, 12, 0, 0)
    rows = [
        (log_payload(), now - timedelta(hours=1)),
        (
            log_payload(change_type="RESTOCK", previous_stock=8, new_stock=20, quantity=12, user_id="user-7"),
            now - timedelta(hours=2),
        ),
        (
            log_payload(product_id="prod-2", product_title="Basic Component", previous_stock=5, new_stock=4, quantity=-1),
            now - timedelta(hours=3),
        ),
        (
            log_payload(
                product_id="prod-2",
                product_title="Basic Component",
                change_type="ADJUSTMENT",
                source="WEBHOOK",
                previous_stock=4,
                new_stock=3,
                quantity=-1,
            ),
            now - timedelta(days=2),
        ),
        (log_payload(previous_stock=12, new_stock=10), now - timedelta(days=3)),
        (log_payload(previous_stock=14, new_stock=12, source="POS"), now - timedelta(days=120)),
        (log_payload(shop=OTHER_SHOP), now - timedelta(hours=1)),
    ]
    created = []
    for payload, timestamp in rows:
        created.append(await store.create(payload, timestamp=timestamp))
    return {"now": now, "entries": [e for e in created if e.shop == SHOP]}
