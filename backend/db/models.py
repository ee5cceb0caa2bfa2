"""
StockPulse Database Models

Tables:
  1. inventory_history  - Append-only log of inventory-affecting events
  2. schema_meta        - Provisioned schema version (see db/schema.py)

Multi-tenant via shop on every history row.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)

from db.session import Base
from history.entries import CHANGE_TYPE_VALUES, SOURCE_VALUES


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column here."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# ─── 1. Inventory History ───────────────────────────────────────────────────


class InventoryHistory(Base):
    __tablename__ = "inventory_history"

    # seq gives a stable tie-break when timestamps collide
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    shop = Column(String(255), nullable=False)
    product_id = Column(String(255), nullable=False)
    product_title = Column(String(512), nullable=False)
    variant_id = Column(String(255))
    variant_title = Column(String(512))
    change_type = Column(String(20), nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    user_id = Column(String(255))
    user_name = Column(String(255))
    user_email = Column(String(255))
    order_id = Column(String(255))
    order_number = Column(String(64))
    notes = Column(Text)
    source = Column(String(20), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_inventory_history_shop_time", "shop", "timestamp"),
        Index("ix_inventory_history_shop_product", "shop", "product_id"),
        CheckConstraint(_in_list("change_type", CHANGE_TYPE_VALUES), name="ck_history_change_type"),
        CheckConstraint(_in_list("source", SOURCE_VALUES), name="ck_history_source"),
        CheckConstraint("new_stock = previous_stock + quantity", name="ck_history_stock_delta"),
    )


# ─── 2. Schema Meta ─────────────────────────────────────────────────────────


class SchemaMeta(Base):
    __tablename__ = "schema_meta"

    component = Column(String(50), primary_key=True)
    version = Column(Integer, nullable=False)
    applied_at = Column(DateTime, nullable=False, default=utcnow)
