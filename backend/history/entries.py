"""
Inventory history entry schemas.

CreateInventoryLog is what callers hand to the store; InventoryLogEntry is
what comes back (id and timestamp assigned). Entries are never modified
after creation.
"""

from datetime import datetime
from typing import Literal, get_args

from pydantic import BaseModel, model_validator

ChangeType = Literal[
    "SALE",
    "RESTOCK",
    "MANUAL_EDIT",
    "ADJUSTMENT",
    "RETURN",
    "TRANSFER",
    "DAMAGED",
    "PROMOTION",
]
Source = Literal["ADMIN", "POS", "APP", "WEBHOOK", "MANUAL", "SHOPIFY_FLOW", "API"]

CHANGE_TYPE_VALUES: tuple[str, ...] = get_args(ChangeType)
SOURCE_VALUES: tuple[str, ...] = get_args(Source)


class CreateInventoryLog(BaseModel):
    shop: str
    product_id: str
    product_title: str
    variant_id: str | None = None
    variant_title: str | None = None
    change_type: ChangeType
    previous_stock: int
    new_stock: int
    quantity: int
    user_id: str | None = None
    user_name: str | None = None
    user_email: str | None = None
    order_id: str | None = None
    order_number: str | None = None
    notes: str | None = None
    source: Source

    @model_validator(mode="after")
    def _check_delta(self):
        if self.new_stock != self.previous_stock + self.quantity:
            raise ValueError(
                f"new_stock ({self.new_stock}) must equal previous_stock ({self.previous_stock}) "
                f"+ quantity ({self.quantity})"
            )
        return self


class InventoryLogEntry(CreateInventoryLog):
    id: str
    timestamp: datetime

    model_config = {"from_attributes": True}


# ─── Display metadata ───────────────────────────────────────────────────────

CHANGE_TYPE_INFO: dict[str, dict[str, str]] = {
    "SALE": {"label": "Sale", "description": "Inventory reduced due to customer purchase", "color": "success"},
    "RESTOCK": {"label": "Restock", "description": "Inventory increased from supplier delivery", "color": "info"},
    "MANUAL_EDIT": {"label": "Manual Edit", "description": "Inventory manually adjusted by staff", "color": "attention"},
    "ADJUSTMENT": {
        "label": "Adjustment",
        "description": "Inventory corrected due to count discrepancy",
        "color": "warning",
    },
    "RETURN": {"label": "Return", "description": "Inventory increased from customer return", "color": "info"},
    "TRANSFER": {"label": "Transfer", "description": "Inventory moved between locations", "color": "info"},
    "DAMAGED": {"label": "Damaged", "description": "Inventory removed due to damage", "color": "critical"},
    "PROMOTION": {
        "label": "Promotion",
        "description": "Inventory reduced due to promotional activity",
        "color": "success",
    },
}

SOURCE_INFO: dict[str, dict[str, str]] = {
    "ADMIN": {"label": "Shopify Admin", "description": "Change made through Shopify admin panel"},
    "POS": {"label": "Point of Sale", "description": "Change made through POS system"},
    "APP": {"label": "Third-party App", "description": "Change made by external application"},
    "WEBHOOK": {"label": "Webhook", "description": "Automatic change via webhook"},
    "MANUAL": {"label": "Manual Entry", "description": "Manually entered change"},
    "SHOPIFY_FLOW": {"label": "Shopify Flow", "description": "Automated by Shopify Flow"},
    "API": {"label": "API", "description": "Change made via API call"},
}

_UNKNOWN_CHANGE = {"label": "Unknown", "description": "Unknown inventory change", "color": "info"}
_UNKNOWN_SOURCE = {"label": "Unknown", "description": "Unknown source"}


def change_type_info(change_type: str) -> dict[str, str]:
    return CHANGE_TYPE_INFO.get(change_type, _UNKNOWN_CHANGE)


def source_info(source: str) -> dict[str, str]:
    return SOURCE_INFO.get(source, _UNKNOWN_SOURCE)
