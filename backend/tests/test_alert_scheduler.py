"""
Tests for the Alert Scheduler — cycles, triggers, dismissal and shutdown.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from alerts.models import ProductSnapshot
from alerts.providers import DEMO_SNAPSHOTS, StaticSnapshotProvider
from alerts.scheduler import (
    REFRESHED_MESSAGE,
    AlertScheduler,
    SchedulerRegistry,
    SchedulerState,
    build_scheduler,
)
from alerts.sinks import InMemorySink, NotificationResult
from core.config import Settings
from core.errors import DataUnavailable

SHOP = "test-shop.myshopify.com"
T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class BlockingProvider:
    """Holds the cycle open until ``release`` is set."""

    def __init__(self, snapshots=DEMO_SNAPSHOTS):
        self.snapshots = list(snapshots)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def get_snapshots(self, shop):
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        return self.snapshots


class FailingProvider:
    async def get_snapshots(self, shop):
        raise DataUnavailable("store offline")


class SlowSink(InMemorySink):
    async def notify(self, alert_id, text):
        await asyncio.sleep(3600)


def make_scheduler(provider=None, sink=None, clock=None, **kwargs):
    return AlertScheduler(
        SHOP,
        provider or StaticSnapshotProvider(),
        sink or InMemorySink(),
        clock=clock or FakeClock(),
        interval=3600,
        **kwargs,
    )


@pytest.mark.asyncio
class TestTick:
    async def test_tick_fills_buffer_and_notifies(self):
        sink = InMemorySink()
        scheduler = make_scheduler(sink=sink)
        assert await scheduler.tick() is True
        await scheduler.drain()

        snapshot = scheduler.snapshot()
        assert snapshot.state is SchedulerState.IDLE
        assert snapshot.last_check == T0
        assert [a.title for a in snapshot.alerts] == [
            "Low Stock Warning",
            "Critical Stock Levels",
            "Products Out of Stock",
        ]
        assert sorted(sink.messages) == sorted(
            [
                "Products Out of Stock: 1 product is completely out of stock",
                "Critical Stock Levels: 2 products need immediate attention",
                "Low Stock Warning: 1 product is running low",
            ]
        )

    async def test_second_tick_inside_window_is_deduplicated(self):
        sink = InMemorySink()
        clock = FakeClock()
        scheduler = make_scheduler(sink=sink, clock=clock)
        await scheduler.tick()
        clock.advance(minutes=1)
        await scheduler.tick()
        await scheduler.drain()

        assert len(scheduler.snapshot().alerts) == 3
        assert len(sink.toasts) == 3
        assert scheduler.last_check == T0 + timedelta(minutes=1)

    async def test_tick_after_window_adds_new_alerts(self):
        clock = FakeClock()
        scheduler = make_scheduler(clock=clock, auto_dismiss_after=None)
        await scheduler.tick()
        clock.advance(minutes=6)
        await scheduler.tick()
        assert len(scheduler.snapshot().alerts) == 6

    async def test_buffer_is_capped(self):
        clock = FakeClock()
        scheduler = make_scheduler(clock=clock, auto_dismiss_after=None)
        for _ in range(5):
            await scheduler.tick()
            clock.advance(minutes=6)
        assert len(scheduler.snapshot().alerts) == 10

    async def test_healthy_catalogue_produces_nothing(self):
        provider = StaticSnapshotProvider([ProductSnapshot(id="1", name="Plenty", stock=500, daily_sales_velocity=1)])
        sink = InMemorySink()
        scheduler = make_scheduler(provider=provider, sink=sink)
        await scheduler.tick()
        await scheduler.drain()
        assert scheduler.snapshot().alerts == ()
        assert sink.toasts == []

    async def test_auto_dismiss_old_alerts(self):
        provider = StaticSnapshotProvider([ProductSnapshot(id="1", name="Empty", stock=0)])
        clock = FakeClock()
        scheduler = make_scheduler(provider=provider, clock=clock, auto_dismiss_after=timedelta(minutes=10))
        await scheduler.tick()
        clock.advance(minutes=11)
        await scheduler.tick()

        alerts = scheduler.snapshot().alerts
        assert [a.dismissed for a in alerts] == [False, True]
        assert len(scheduler.active_alerts()) == 1

    async def test_auto_dismiss_notifies_sink(self):
        provider = StaticSnapshotProvider([ProductSnapshot(id="1", name="Empty", stock=0)])
        clock = FakeClock()
        sink = InMemorySink()
        scheduler = make_scheduler(provider=provider, sink=sink, clock=clock, auto_dismiss_after=timedelta(minutes=10))
        await scheduler.tick()
        clock.advance(minutes=11)
        await scheduler.tick()
        await scheduler.drain()

        fresh, expired = scheduler.snapshot().alerts
        toasts = {t.alert_id: t.dismissed for t in sink.toasts}
        assert toasts[expired.id] is True
        assert toasts[fresh.id] is False


@pytest.mark.asyncio
class TestTriggers:
    async def test_trigger_while_checking_is_dropped(self):
        provider = BlockingProvider()
        scheduler = make_scheduler(provider=provider)

        first = asyncio.create_task(scheduler.tick())
        await provider.entered.wait()
        assert scheduler.state is SchedulerState.CHECKING

        assert await scheduler.refresh() is False
        assert await scheduler.tick() is False
        assert provider.calls == 1

        provider.release.set()
        assert await first is True
        assert scheduler.state is SchedulerState.IDLE

    async def test_refresh_replaces_buffer(self):
        sink = InMemorySink()
        clock = FakeClock()
        scheduler = make_scheduler(sink=sink, clock=clock, auto_dismiss_after=None)
        await scheduler.tick()
        clock.advance(minutes=6)
        await scheduler.tick()
        assert len(scheduler.snapshot().alerts) == 6

        assert await scheduler.refresh() is True
        await scheduler.drain()
        alerts = scheduler.snapshot().alerts
        assert len(alerts) == 3
        assert all(a.timestamp == clock.now for a in alerts)
        assert sink.messages[-1] == REFRESHED_MESSAGE

    async def test_provider_failure_returns_to_idle(self):
        scheduler = make_scheduler(provider=FailingProvider())
        assert await scheduler.tick() is True
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.snapshot().alerts == ()
        assert scheduler.last_check is None


@pytest.mark.asyncio
class TestDismissal:
    async def test_dismiss_one(self):
        sink = InMemorySink()
        scheduler = make_scheduler(sink=sink)
        await scheduler.tick()
        target = scheduler.active_alerts()[0]

        assert scheduler.dismiss(target.id) is True
        await scheduler.drain()
        assert target.id not in [a.id for a in scheduler.active_alerts()]
        assert len(scheduler.snapshot().alerts) == 3
        assert [t.dismissed for t in sink.toasts if t.alert_id == target.id] == [True]

    async def test_dismiss_unknown(self):
        scheduler = make_scheduler()
        await scheduler.tick()
        assert scheduler.dismiss("missing") is False

    async def test_dismiss_all(self):
        scheduler = make_scheduler()
        await scheduler.tick()
        assert scheduler.dismiss_all() == 3
        assert scheduler.active_alerts() == ()
        assert scheduler.snapshot().to_dict()["active_count"] == 0

    async def test_snapshot_counts(self):
        scheduler = make_scheduler()
        await scheduler.tick()
        data = scheduler.snapshot().to_dict()
        assert data["state"] == "idle"
        assert data["critical_count"] == 2
        assert data["warning_count"] == 1
        assert data["buffered_count"] == 3


@pytest.mark.asyncio
class TestLifecycle:
    async def test_start_runs_initial_check(self):
        scheduler = make_scheduler()
        scheduler.start()
        for _ in range(20):
            if scheduler.last_check is not None:
                break
            await asyncio.sleep(0)
        assert scheduler.last_check == T0
        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running

    async def test_stopped_scheduler_ignores_triggers(self):
        sink = InMemorySink()
        scheduler = make_scheduler(sink=sink)
        await scheduler.stop()
        assert await scheduler.tick() is False
        assert await scheduler.refresh() is False
        assert scheduler.dismiss_all() == 0
        assert sink.toasts == []
        with pytest.raises(RuntimeError):
            scheduler.start()

    async def test_stop_during_cycle_discards_result(self):
        provider = BlockingProvider()
        scheduler = make_scheduler(provider=provider)
        cycle = asyncio.create_task(scheduler.tick())
        await provider.entered.wait()
        await scheduler.stop()
        provider.release.set()
        assert await cycle is False
        assert scheduler.snapshot().alerts == ()

    async def test_stop_cancels_pending_notifications(self):
        scheduler = make_scheduler(sink=SlowSink())
        await scheduler.tick()
        assert scheduler._pending
        await scheduler.stop()
        assert not scheduler._pending

    async def test_slow_sink_times_out(self):
        scheduler = make_scheduler(sink=SlowSink(), notification_timeout=0.01)
        await scheduler.tick()
        await asyncio.wait_for(scheduler.drain(), timeout=1)
        assert len(scheduler.snapshot().alerts) == 3


@pytest.mark.asyncio
class TestRegistry:
    async def test_one_scheduler_per_shop(self):
        registry = SchedulerRegistry(lambda shop: AlertScheduler(shop, StaticSnapshotProvider(), InMemorySink(), interval=3600))
        first = registry.get("a.myshopify.com")
        assert registry.get("a.myshopify.com") is first
        registry.get("b.myshopify.com")
        assert registry.shops() == ["a.myshopify.com", "b.myshopify.com"]

        await registry.stop_all()
        assert first.stopped
        assert registry.shops() == []

    async def test_build_scheduler_from_settings(self):
        settings = Settings(
            snapshot_provider="static",
            alert_sink="memory",
            alert_critical_stock=4,
            alert_buffer_size=5,
            alert_auto_dismiss_minutes=0,
        )
        scheduler = build_scheduler(SHOP, settings)
        assert isinstance(scheduler.provider, StaticSnapshotProvider)
        assert isinstance(scheduler.sink, InMemorySink)
        assert scheduler.thresholds.critical_stock == 4
        assert scheduler.capacity == 5
        assert scheduler.auto_dismiss_after is None


@pytest.mark.asyncio
async def test_in_memory_sink_verify():
    result = await InMemorySink().verify()
    assert result == NotificationResult(type="memory", success=True, message="In-memory sink ready")
