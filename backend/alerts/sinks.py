"""
Notification sinks — where the scheduler sends one-shot alert messages.

The scheduler treats every sink call as fire-and-forget. ``verify`` reports
sink health as a NotificationResult and never raises.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Protocol

import redis.asyncio as aioredis
import structlog

from db.models import utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotificationResult:
    type: str
    success: bool
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class NotificationSink(Protocol):
    async def notify(self, alert_id: str | None, text: str) -> None: ...

    async def dismiss(self, alert_id: str) -> None: ...

    async def dismiss_all(self) -> None: ...

    async def verify(self) -> NotificationResult: ...


@dataclass
class Toast:
    alert_id: str | None
    text: str
    dismissed: bool = False


@dataclass
class InMemorySink:
    """Keeps composed messages in memory for the presentation layer to poll."""

    toasts: list[Toast] = field(default_factory=list)

    async def notify(self, alert_id: str | None, text: str) -> None:
        self.toasts.append(Toast(alert_id=alert_id, text=text))

    async def dismiss(self, alert_id: str) -> None:
        for toast in self.toasts:
            if toast.alert_id == alert_id:
                toast.dismissed = True

    async def dismiss_all(self) -> None:
        for toast in self.toasts:
            toast.dismissed = True

    async def verify(self) -> NotificationResult:
        return NotificationResult(type="memory", success=True, message="In-memory sink ready")

    @property
    def messages(self) -> list[str]:
        return [t.text for t in self.toasts]


class RedisPublishSink:
    """Publish messages on the shop's ``alerts:{shop}`` Redis channel."""

    def __init__(self, redis_url: str, shop: str):
        self.redis_url = redis_url
        self.channel = f"alerts:{shop}"

    async def _publish(self, payload: dict) -> int:
        redis = aioredis.from_url(self.redis_url)
        try:
            return await redis.publish(self.channel, json.dumps(payload))
        finally:
            await redis.aclose()

    async def notify(self, alert_id: str | None, text: str) -> None:
        await self._publish(
            {
                "type": "alert",
                "payload": {"alert_id": alert_id, "text": text, "sent_at": utcnow().isoformat()},
            }
        )

    async def dismiss(self, alert_id: str) -> None:
        await self._publish({"type": "dismiss", "payload": {"alert_id": alert_id}})

    async def dismiss_all(self) -> None:
        await self._publish({"type": "dismiss_all", "payload": {}})

    async def verify(self) -> NotificationResult:
        redis = aioredis.from_url(self.redis_url)
        try:
            await redis.ping()
            return NotificationResult(type="redis", success=True, message=f"Connected, publishing to {self.channel}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("sink.verify_failed", sink="redis", error=str(exc))
            return NotificationResult(type="redis", success=False, message=f"Redis unavailable: {exc}")
        finally:
            await redis.aclose()
