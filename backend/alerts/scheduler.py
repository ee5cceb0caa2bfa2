"""
Alert Scheduler — periodic and on-demand classification cycles per shop.

Each shop session gets one AlertScheduler that owns the alert buffer and the
last-check time. A cycle is:

    provider snapshots -> classify -> aggregate -> dedup merge -> notify

States are ``idle`` and ``checking``. A trigger that arrives while a cycle
is in flight is dropped. The periodic timer only rearms after the running
cycle finishes, so cycles never overlap. After ``stop()`` nothing in here
touches the buffer or the sink again.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog

from alerts.dedup import DEFAULT_CAPACITY, DEFAULT_WINDOW, merge_alerts
from alerts.engine import DEFAULT_THRESHOLDS, run_classification
from alerts.models import AlertThresholds, InstantAlert
from alerts.providers import HistorySnapshotProvider, StaticSnapshotProvider, StockSnapshotProvider
from alerts.sinks import InMemorySink, NotificationSink, RedisPublishSink

logger = structlog.get_logger()

REFRESHED_MESSAGE = "Alerts refreshed"


class SchedulerState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SchedulerSnapshot:
    """Read-only view handed to consumers."""

    shop: str
    state: SchedulerState
    last_check: datetime | None
    alerts: tuple[InstantAlert, ...]

    @property
    def active_alerts(self) -> tuple[InstantAlert, ...]:
        return tuple(a for a in self.alerts if not a.dismissed)

    def to_dict(self) -> dict:
        active = self.active_alerts
        return {
            "shop": self.shop,
            "state": self.state.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "active": [a.to_dict() for a in active],
            "active_count": len(active),
            "critical_count": sum(1 for a in active if a.type == "critical"),
            "warning_count": sum(1 for a in active if a.type == "warning"),
            "buffered_count": len(self.alerts),
        }


class AlertScheduler:
    def __init__(
        self,
        shop: str,
        provider: StockSnapshotProvider,
        sink: NotificationSink,
        *,
        thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
        interval: float = 60.0,
        dedup_window: timedelta = DEFAULT_WINDOW,
        capacity: int = DEFAULT_CAPACITY,
        auto_dismiss_after: timedelta | None = timedelta(minutes=10),
        notification_timeout: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.shop = shop
        self.provider = provider
        self.sink = sink
        self.thresholds = thresholds
        self.interval = interval
        self.dedup_window = dedup_window
        self.capacity = capacity
        self.auto_dismiss_after = auto_dismiss_after
        self.notification_timeout = notification_timeout
        self._clock = clock

        self._state = SchedulerState.IDLE
        self._alerts: tuple[InstantAlert, ...] = ()
        self._last_check: datetime | None = None
        self._timer: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._stopped = False

    # ── Read side ────────────────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_check(self) -> datetime | None:
        return self._last_check

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def snapshot(self) -> SchedulerSnapshot:
        return SchedulerSnapshot(
            shop=self.shop,
            state=self._state,
            last_check=self._last_check,
            alerts=self._alerts,
        )

    def active_alerts(self) -> tuple[InstantAlert, ...]:
        return self.snapshot().active_alerts

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic timer. The first check runs immediately."""
        if self._stopped:
            raise RuntimeError(f"scheduler for {self.shop} has been stopped")
        if self.running:
            return
        self._timer = asyncio.create_task(self._run(), name=f"alert-scheduler:{self.shop}")
        logger.info("scheduler.started", shop=self.shop, interval=self.interval)

    async def stop(self) -> None:
        """Cancel the timer and any in-flight notifications."""
        if self._stopped:
            return
        self._stopped = True
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()
        logger.info("scheduler.stopped", shop=self.shop)

    async def _run(self) -> None:
        while not self._stopped:
            await self.tick()
            await asyncio.sleep(self.interval)

    # ── Triggers ─────────────────────────────────────────────────────────

    async def tick(self) -> bool:
        """Periodic cycle: merge fresh alerts into the buffer with dedup.

        Returns False when the trigger was dropped.
        """
        return await self._cycle(self._merge, trigger="tick")

    async def refresh(self) -> bool:
        """Manual cycle: replace the whole buffer with a fresh result."""
        return await self._cycle(self._replace, trigger="manual")

    async def _cycle(self, apply: Callable[[list[InstantAlert], datetime], None], trigger: str) -> bool:
        if self._stopped:
            logger.debug("scheduler.trigger_ignored", shop=self.shop, trigger=trigger, reason="stopped")
            return False
        if self._state is SchedulerState.CHECKING:
            logger.debug("scheduler.trigger_dropped", shop=self.shop, trigger=trigger)
            return False

        self._state = SchedulerState.CHECKING
        try:
            snapshots = await self.provider.get_snapshots(self.shop)
            if self._stopped:
                return False
            now = self._clock()
            fresh = run_classification(snapshots, now, self.thresholds)
            apply(fresh, now)
            self._last_check = now
            logger.info(
                "scheduler.cycle_complete",
                shop=self.shop,
                trigger=trigger,
                products=len(snapshots),
                alerts=len(fresh),
            )
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("scheduler.cycle_failed", shop=self.shop, trigger=trigger, error=str(exc), exc_info=True)
            return True
        finally:
            self._state = SchedulerState.IDLE

    def _merge(self, fresh: list[InstantAlert], now: datetime) -> None:
        self._auto_dismiss(now)
        result = merge_alerts(self._alerts, fresh, window=self.dedup_window, capacity=self.capacity)
        self._alerts = result.buffer
        for alert in result.accepted:
            self._dispatch(self.sink.notify(alert.id, alert.notification_text))
        if result.suppressed:
            logger.debug("scheduler.alerts_suppressed", shop=self.shop, count=len(result.suppressed))

    def _replace(self, fresh: list[InstantAlert], now: datetime) -> None:
        self._alerts = tuple(fresh[: self.capacity])
        self._dispatch(self.sink.notify(None, REFRESHED_MESSAGE))

    def _auto_dismiss(self, now: datetime) -> None:
        if self.auto_dismiss_after is None:
            return
        cutoff = now - self.auto_dismiss_after
        expired = [a.id for a in self._alerts if not a.dismissed and a.timestamp < cutoff]
        if not expired:
            return
        self._alerts = tuple(a.dismiss() if a.id in expired else a for a in self._alerts)
        for alert_id in expired:
            self._dispatch(self.sink.dismiss(alert_id))

    # ── Dismissal ────────────────────────────────────────────────────────

    def dismiss(self, alert_id: str) -> bool:
        """Mark one entry dismissed. Returns False if it is not in the buffer."""
        if self._stopped or not any(a.id == alert_id for a in self._alerts):
            return False
        self._alerts = tuple(a.dismiss() if a.id == alert_id else a for a in self._alerts)
        self._dispatch(self.sink.dismiss(alert_id))
        return True

    def dismiss_all(self) -> int:
        """Mark every entry dismissed. Returns how many were active."""
        if self._stopped:
            return 0
        count = sum(1 for a in self._alerts if not a.dismissed)
        self._alerts = tuple(a.dismiss() for a in self._alerts)
        self._dispatch(self.sink.dismiss_all())
        return count

    # ── Notifications ────────────────────────────────────────────────────

    def _dispatch(self, call: Awaitable[None]) -> None:
        task = asyncio.ensure_future(self._deliver(call))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, call: Awaitable[None]) -> None:
        try:
            await asyncio.wait_for(call, timeout=self.notification_timeout)
        except asyncio.TimeoutError:
            logger.warning("scheduler.notify_timeout", shop=self.shop, timeout=self.notification_timeout)
        except Exception as exc:  # noqa: BLE001
            logger.warning("scheduler.notify_failed", shop=self.shop, error=str(exc))

    async def drain(self) -> None:
        """Wait for queued notifications to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class SchedulerRegistry:
    """One running scheduler per shop, created on first use."""

    def __init__(self, factory: Callable[[str], AlertScheduler]):
        self._factory = factory
        self._schedulers: dict[str, AlertScheduler] = {}

    def get(self, shop: str) -> AlertScheduler:
        scheduler = self._schedulers.get(shop)
        if scheduler is None or scheduler.stopped:
            scheduler = self._factory(shop)
            self._schedulers[shop] = scheduler
            scheduler.start()
        return scheduler

    def shops(self) -> list[str]:
        return sorted(self._schedulers)

    async def stop_all(self) -> None:
        schedulers = list(self._schedulers.values())
        self._schedulers.clear()
        for scheduler in schedulers:
            await scheduler.stop()


def build_scheduler(shop: str, settings, session_factory=None) -> AlertScheduler:
    """Wire a scheduler from settings."""
    if settings.snapshot_provider == "history" and session_factory is not None:
        provider = HistorySnapshotProvider(session_factory, lookback_days=settings.snapshot_lookback_days)
    else:
        provider = StaticSnapshotProvider()

    if settings.alert_sink == "redis":
        sink = RedisPublishSink(settings.redis_url, shop)
    else:
        sink = InMemorySink()

    auto_dismiss = settings.alert_auto_dismiss_minutes
    return AlertScheduler(
        shop,
        provider,
        sink,
        thresholds=AlertThresholds.from_settings(settings),
        interval=settings.alert_check_interval_seconds,
        dedup_window=timedelta(seconds=settings.alert_dedup_window_seconds),
        capacity=settings.alert_buffer_size,
        auto_dismiss_after=timedelta(minutes=auto_dismiss) if auto_dismiss and auto_dismiss > 0 else None,
        notification_timeout=settings.notification_timeout_seconds,
    )
