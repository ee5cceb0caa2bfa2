"""
Outbound notification channels: email, Slack and Discord.

Every public function here returns NotificationResult values. Channel
failures are logged and reported, never raised, so a broken webhook cannot
take down the caller.
"""

import httpx
import structlog
from pydantic import BaseModel, Field

from alerts.email import ShopInfo, StockItem, send_low_stock_email
from alerts.sinks import NotificationResult
from core.errors import NotificationError
from db.models import utcnow

logger = structlog.get_logger()

HTTP_TIMEOUT = 10.0
DISCORD_AVATAR_URL = "https://cdn.shopify.com/s/files/1/0533/2089/files/shopify_glyph.png"


class EmailChannelSettings(BaseModel):
    enabled: bool = False
    recipient_email: str = ""
    oos_alerts_enabled: bool = False
    critical_alerts_enabled: bool = False


class SlackChannelSettings(BaseModel):
    enabled: bool = False
    webhook_url: str = ""
    channel: str = ""


class DiscordChannelSettings(BaseModel):
    enabled: bool = False
    webhook_url: str = ""
    username: str = "Inventory Bot"


class NotificationSettings(BaseModel):
    email: EmailChannelSettings = Field(default_factory=EmailChannelSettings)
    slack: SlackChannelSettings = Field(default_factory=SlackChannelSettings)
    discord: DiscordChannelSettings = Field(default_factory=DiscordChannelSettings)


def _split(products: list[StockItem], threshold: int) -> tuple[list[StockItem], list[StockItem]]:
    low = [p for p in products if 0 < p.stock <= threshold]
    out = [p for p in products if p.stock == 0]
    return low, out


def _field_values(low: list[StockItem], out: list[StockItem]) -> tuple[str, str]:
    out_text = "\n".join(f"• {p.name}" for p in out) or "None"
    low_text = "\n".join(f"• {p.name} ({p.stock} left)" for p in low) or "None"
    return out_text, low_text


async def _post_json(webhook_url: str, payload: dict, service: str) -> None:
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            resp = await client.post(webhook_url, json=payload)
    except httpx.HTTPError as exc:
        raise NotificationError(f"{service} request failed: {exc}") from exc
    if resp.is_error:
        raise NotificationError(f"{service} API error: {resp.status_code}")


# ─── Slack ──────────────────────────────────────────────────────────────────


async def send_slack_notification(
    webhook_url: str,
    channel: str,
    products: list[StockItem],
    shop: ShopInfo,
    threshold: int = 5,
) -> NotificationResult:
    low, out = _split(products, threshold)
    out_text, low_text = _field_values(low, out)
    payload = {
        "channel": channel,
        "username": "Inventory Bot",
        "icon_emoji": ":package:",
        "text": f"Inventory alert for {shop.name}",
        "attachments": [
            {
                "color": "danger" if out else "warning",
                "title": f"Inventory Alert for {shop.name}",
                "fields": [
                    {"title": "Out of Stock", "value": out_text, "short": True},
                    {"title": f"Low Stock (≤{threshold})", "value": low_text, "short": True},
                ],
                "footer": "StockPulse",
                "ts": int(utcnow().timestamp()),
            }
        ],
    }
    try:
        await _post_json(webhook_url, payload, "Slack")
    except NotificationError as exc:
        logger.warning("notifications.slack_failed", error=str(exc))
        return NotificationResult(type="slack", success=False, message=f"Failed to send Slack notification: {exc}")
    return NotificationResult(type="slack", success=True, message="Slack notification sent successfully")


# ─── Discord ────────────────────────────────────────────────────────────────


async def send_discord_notification(
    webhook_url: str,
    username: str,
    products: list[StockItem],
    shop: ShopInfo,
    threshold: int = 5,
) -> NotificationResult:
    low, out = _split(products, threshold)
    out_text, low_text = _field_values(low, out)
    payload = {
        "username": username,
        "avatar_url": DISCORD_AVATAR_URL,
        "embeds": [
            {
                "title": f"Inventory Alert for {shop.name}",
                "color": 0xFF0000 if out else 0xFFA500,
                "fields": [
                    {"name": "Out of Stock", "value": out_text, "inline": True},
                    {"name": f"Low Stock (≤{threshold})", "value": low_text, "inline": True},
                ],
                "footer": {"text": "StockPulse"},
                "timestamp": utcnow().isoformat(),
            }
        ],
    }
    try:
        await _post_json(webhook_url, payload, "Discord")
    except NotificationError as exc:
        logger.warning("notifications.discord_failed", error=str(exc))
        return NotificationResult(
            type="discord", success=False, message=f"Failed to send Discord notification: {exc}"
        )
    return NotificationResult(type="discord", success=True, message="Discord notification sent successfully")


# ─── Email ──────────────────────────────────────────────────────────────────


def select_email_products(settings: EmailChannelSettings, products: list[StockItem], threshold: int) -> list[StockItem]:
    """Apply the out-of-stock / critical toggles; with neither set, send all alerts."""
    low, out = _split(products, threshold)
    critical = [p for p in products if 0 < p.stock <= threshold / 2]

    selected: list[StockItem] = []
    if settings.oos_alerts_enabled:
        selected.extend(out)
    if settings.critical_alerts_enabled:
        selected.extend(critical)
    if not settings.oos_alerts_enabled and not settings.critical_alerts_enabled:
        selected = [*low, *out]

    seen: set[str] = set()
    unique = []
    for product in selected:
        if product.id not in seen:
            seen.add(product.id)
            unique.append(product)
    return unique


async def send_email_notification(
    settings: EmailChannelSettings,
    products: list[StockItem],
    shop: ShopInfo,
    threshold: int = 5,
) -> NotificationResult:
    selected = select_email_products(settings, products, threshold)
    if not selected:
        return NotificationResult(type="email", success=True, message="No products match selected alert criteria")
    try:
        message = await send_low_stock_email(
            settings.recipient_email,
            [p for p in selected if p.stock > 0],
            [p for p in selected if p.stock == 0],
            threshold,
            shop,
        )
    except NotificationError as exc:
        logger.warning("notifications.email_failed", error=str(exc))
        return NotificationResult(type="email", success=False, message=f"Email error: {exc}")
    return NotificationResult(type="email", success=True, message=message)


# ─── Fan-out ────────────────────────────────────────────────────────────────


async def send_all_notifications(
    settings: NotificationSettings,
    products: list[StockItem],
    shop: ShopInfo,
    threshold: int = 5,
) -> list[NotificationResult]:
    """Send to every enabled channel and report one result per channel."""
    results = []
    if settings.email.enabled and settings.email.recipient_email:
        results.append(await send_email_notification(settings.email, products, shop, threshold))
    if settings.slack.enabled and settings.slack.webhook_url:
        results.append(
            await send_slack_notification(settings.slack.webhook_url, settings.slack.channel, products, shop, threshold)
        )
    if settings.discord.enabled and settings.discord.webhook_url:
        results.append(
            await send_discord_notification(
                settings.discord.webhook_url, settings.discord.username, products, shop, threshold
            )
        )
    return results


TEST_PRODUCTS = [
    StockItem(id="test-1", name="Test Product - Out of Stock", stock=0),
    StockItem(id="test-2", name="Test Product - Low Stock", stock=2),
]


async def verify_notification_channels(settings: NotificationSettings, shop: ShopInfo) -> list[NotificationResult]:
    """Send a fixed sample through every enabled channel."""
    return await send_all_notifications(settings, TEST_PRODUCTS, shop)

