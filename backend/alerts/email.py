"""
Email Delivery for low-stock alerts.

One message per call listing out-of-stock and low-stock products, sent via
SendGrid.
"""

from dataclasses import dataclass
from html import escape

import sendgrid
import structlog
from sendgrid.helpers.mail import Mail

from core.config import get_settings
from core.errors import NotificationError
from db.models import utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class ShopInfo:
    name: str
    email: str
    myshopify_domain: str
    contact_email: str | None = None


@dataclass(frozen=True)
class StockItem:
    id: str
    name: str
    stock: int


def render_low_stock_email(
    low_stock: list[StockItem],
    out_of_stock: list[StockItem],
    threshold: int,
    shop: ShopInfo,
) -> tuple[str, str]:
    """Return (subject, html) for a low-stock digest."""
    total = len(low_stock) + len(out_of_stock)
    subject = f"Low Stock Alert - {total} Products Need Attention"
    shop_name = escape(shop.name)

    sections = []
    if out_of_stock:
        items = "".join(
            f'<li style="margin: 5px 0;"><strong>{escape(p.name)}</strong> - '
            f'<span style="color: #d63638; font-weight: bold;">Out of Stock</span></li>'
            for p in out_of_stock
        )
        sections.append(
            f"""
        <div style="margin: 20px 0; padding: 15px; background-color: #fef2f2; border-left: 4px solid #d63638;">
          <h3 style="color: #d63638; margin-top: 0;">Out of Stock Products ({len(out_of_stock)})</h3>
          <ul style="margin: 0; padding-left: 20px;">{items}</ul>
        </div>"""
        )
    if low_stock:
        items = "".join(
            f'<li style="margin: 5px 0;"><strong>{escape(p.name)}</strong> - '
            f'<span style="color: #f59e0b; font-weight: bold;">{p.stock} units left</span></li>'
            for p in low_stock
        )
        sections.append(
            f"""
        <div style="margin: 20px 0; padding: 15px; background-color: #fffbeb; border-left: 4px solid #f59e0b;">
          <h3 style="color: #f59e0b; margin-top: 0;">Low Stock Products ({len(low_stock)})</h3>
          <p style="color: #666;">These products are running low (threshold: {threshold} units):</p>
          <ul style="margin: 0; padding-left: 20px;">{items}</ul>
        </div>"""
        )

    generated = utcnow().strftime("%Y-%m-%d %H:%M UTC")
    html_content = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #d63638;">Low Stock Alert - {total} Products Need Attention</h2>
      <p style="color: #374151;">Your <strong>{shop_name}</strong> store has products that require attention.</p>
      {''.join(sections)}
      <p style="text-align: center; margin-top: 20px;">
        <a href="https://{escape(shop.myshopify_domain)}/admin/products"
           style="background-color: #7c3aed; color: white; padding: 12px 24px; text-decoration: none;
                  border-radius: 6px; font-weight: bold;">
          Go to Shopify Admin
        </a>
      </p>
      <p style="color: #9ca3af; font-size: 12px; text-align: center;">
        Generated for <strong>{shop_name}</strong> on {generated}
      </p>
    </div>
    """
    return subject, html_content


async def send_low_stock_email(
    to_email: str,
    low_stock: list[StockItem],
    out_of_stock: list[StockItem],
    threshold: int,
    shop: ShopInfo,
) -> str:
    """Send the digest via SendGrid. Raises NotificationError on failure."""
    settings = get_settings()
    subject, html_content = render_low_stock_email(low_stock, out_of_stock, threshold, shop)
    try:
        sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
        email = Mail(
            from_email=settings.alert_from_email,
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
        )
        response = sg.send(email)
    except Exception as exc:  # noqa: BLE001
        raise NotificationError(f"SendGrid request failed: {exc}") from exc

    if response.status_code not in (200, 201, 202):
        raise NotificationError(f"SendGrid returned {response.status_code}")
    logger.info("email.sent", to=to_email, products=len(low_stock) + len(out_of_stock))
    return f"Email sent to {to_email}"
