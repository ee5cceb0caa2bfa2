"""
History recorders — turn business events into inventory log entries.

Logging is a side effect of the business action, never a precondition:
every recorder swallows persistence and validation failures after logging
them and returns None. Nothing is retried.
"""

from dataclasses import dataclass

import structlog
from pydantic import ValidationError

from core.errors import PersistenceError
from history.entries import CreateInventoryLog, InventoryLogEntry
from history.store import HistoryStore

logger = structlog.get_logger()


async def record_change(store: HistoryStore, data: CreateInventoryLog | dict) -> InventoryLogEntry | None:
    """Create an entry, returning None instead of raising on failure."""
    try:
        return await store.create(data)
    except (PersistenceError, ValidationError, ValueError) as exc:
        logger.error("history.record_failed", error=str(exc))
        return None


async def log_manual_change(
    store: HistoryStore,
    shop: str,
    product_id: str,
    product_title: str,
    previous_stock: int,
    new_stock: int,
    *,
    variant_id: str | None = None,
    variant_title: str | None = None,
    user_id: str | None = None,
    user_name: str | None = None,
    user_email: str | None = None,
    notes: str | None = None,
) -> InventoryLogEntry | None:
    return await record_change(
        store,
        {
            "shop": shop,
            "product_id": product_id,
            "product_title": product_title,
            "variant_id": variant_id,
            "variant_title": variant_title,
            "change_type": "MANUAL_EDIT",
            "previous_stock": previous_stock,
            "new_stock": new_stock,
            "quantity": new_stock - previous_stock,
            "user_id": user_id,
            "user_name": user_name,
            "user_email": user_email,
            "source": "ADMIN",
            "notes": notes or "Manual inventory adjustment",
        },
    )


@dataclass(frozen=True)
class SaleLine:
    product_id: str
    product_title: str
    quantity: int
    previous_stock: int
    variant_id: str | None = None
    variant_title: str | None = None


async def log_sale(
    store: HistoryStore,
    shop: str,
    order_id: str,
    order_number: str,
    lines: list[SaleLine],
    source: str = "ADMIN",
) -> list[InventoryLogEntry]:
    """One SALE entry per line item. Lines that fail to record are skipped."""
    created = []
    for line in lines:
        entry = await record_change(
            store,
            {
                "shop": shop,
                "product_id": line.product_id,
                "product_title": line.product_title,
                "variant_id": line.variant_id,
                "variant_title": line.variant_title,
                "change_type": "SALE",
                "previous_stock": line.previous_stock,
                "new_stock": line.previous_stock - line.quantity,
                "quantity": -line.quantity,
                "order_id": order_id,
                "order_number": order_number,
                "source": source,
                "notes": f"Sale fulfillment - Order #{order_number}",
            },
        )
        if entry is not None:
            created.append(entry)
    logger.info("history.sale_logged", shop=shop, order_number=order_number, lines=len(lines), created=len(created))
    return created


async def log_restock(
    store: HistoryStore,
    shop: str,
    product_id: str,
    product_title: str,
    previous_stock: int,
    new_stock: int,
    *,
    variant_id: str | None = None,
    variant_title: str | None = None,
    user_id: str | None = None,
    user_name: str | None = None,
    user_email: str | None = None,
    supplier: str | None = None,
    purchase_order: str | None = None,
) -> InventoryLogEntry | None:
    notes = f"Restock from {supplier or 'supplier'}"
    if purchase_order:
        notes += f" - PO: {purchase_order}"
    return await record_change(
        store,
        {
            "shop": shop,
            "product_id": product_id,
            "product_title": product_title,
            "variant_id": variant_id,
            "variant_title": variant_title,
            "change_type": "RESTOCK",
            "previous_stock": previous_stock,
            "new_stock": new_stock,
            "quantity": new_stock - previous_stock,
            "user_id": user_id,
            "user_name": user_name,
            "user_email": user_email,
            "source": "ADMIN",
            "notes": notes,
        },
    )


async def log_inventory_level_update(store: HistoryStore, shop: str, payload: dict) -> InventoryLogEntry | None:
    """Record an inventory_levels/update webhook as an ADJUSTMENT."""
    try:
        available = int(payload.get("available") or 0)
        previous = payload.get("previous_quantity")
        previous_stock = int(previous) if previous is not None else available
    except (TypeError, ValueError) as exc:
        logger.error("history.webhook_payload_invalid", shop=shop, error=str(exc))
        return None
    product_id = payload.get("product_id") or f"product_{payload.get('inventory_item_id', 'unknown')}"
    return await record_change(
        store,
        {
            "shop": shop,
            "product_id": str(product_id),
            "product_title": payload.get("product_title") or "Unknown Product",
            "variant_id": str(payload["variant_id"]) if payload.get("variant_id") is not None else None,
            "variant_title": payload.get("variant_title"),
            "change_type": "ADJUSTMENT",
            "previous_stock": previous_stock,
            "new_stock": available,
            "quantity": available - previous_stock,
            "source": "WEBHOOK",
            "notes": f"Inventory updated via webhook for location {payload.get('location_id', 'unknown')}",
        },
    )
