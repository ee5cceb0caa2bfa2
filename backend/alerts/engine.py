"""
Alert Engine — Stockout classification and alert aggregation.

Pipeline per cycle:
  1. classify_snapshots: each product lands in at most one severity bucket
  2. aggregate_alerts: one InstantAlert per non-empty bucket (0-3 per cycle)

Deduplication and buffering live in alerts/dedup.py and alerts/scheduler.py.
"""

import math
from collections.abc import Iterable
from datetime import datetime

from alerts.models import (
    AlertProduct,
    AlertThresholds,
    ClassifiedProducts,
    InstantAlert,
    ProductSnapshot,
)

DEFAULT_THRESHOLDS = AlertThresholds()

# ──────────────────────────────────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────────────────────────────────


def days_until_stockout(stock: int, daily_velocity: float) -> int | None:
    """Forecast days of supply, rounded up. None when there is no velocity."""
    if daily_velocity is None or daily_velocity <= 0:
        return None
    return math.ceil(stock / daily_velocity)


def classify_product(
    snapshot: ProductSnapshot,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> AlertProduct | None:
    """Assign a severity tier to a single product, or None if it is healthy.

    Tiers are checked in severity order and the first match wins, so a
    product never appears in two buckets.
    """
    if snapshot.stock == 0:
        return AlertProduct(
            id=snapshot.id,
            name=snapshot.name,
            stock=0,
            status="out-of-stock",
            days_until_stockout=0,
        )

    days = days_until_stockout(snapshot.stock, snapshot.daily_sales_velocity)

    if snapshot.stock <= thresholds.critical_stock or (days is not None and days <= thresholds.critical_days):
        status = "critical"
    elif snapshot.stock <= thresholds.warning_stock or (days is not None and days <= thresholds.warning_days):
        status = "warning"
    else:
        return None

    return AlertProduct(
        id=snapshot.id,
        name=snapshot.name,
        stock=snapshot.stock,
        status=status,
        days_until_stockout=days,
    )


def classify_snapshots(
    snapshots: Iterable[ProductSnapshot],
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> ClassifiedProducts:
    """Split snapshots into out-of-stock, critical and warning buckets."""
    buckets = ClassifiedProducts()
    for snapshot in snapshots:
        product = classify_product(snapshot, thresholds)
        if product is None:
            continue
        if product.status == "out-of-stock":
            buckets.out_of_stock.append(product)
        elif product.status == "critical":
            buckets.critical.append(product)
        else:
            buckets.warning.append(product)
    return buckets


# ──────────────────────────────────────────────────────────────────────────
# Aggregation
# ──────────────────────────────────────────────────────────────────────────

# bucket -> (alert type, title, singular verb phrase, plural verb phrase, action)
BUCKET_ALERTS = {
    "out-of-stock": ("critical", "Products Out of Stock", "is completely out of stock", "are completely out of stock", "restock"),
    "critical": ("critical", "Critical Stock Levels", "needs immediate attention", "need immediate attention", "urgent-restock"),
    "warning": ("warning", "Low Stock Warning", "is running low", "are running low", "plan-restock"),
}


def _epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _pluralize(count: int, singular: str, plural: str) -> str:
    if count == 1:
        return f"1 product {singular}"
    return f"{count} products {plural}"


def build_alert(bucket: str, products: list[AlertProduct], now: datetime) -> InstantAlert:
    alert_type, title, singular, plural, action = BUCKET_ALERTS[bucket]
    return InstantAlert(
        id=f"{bucket}-{_epoch_millis(now)}",
        type=alert_type,
        title=title,
        message=_pluralize(len(products), singular, plural),
        products=tuple(products),
        timestamp=now,
        dismissed=False,
        action=action,
    )


def aggregate_alerts(classified: ClassifiedProducts, now: datetime) -> list[InstantAlert]:
    """Build one alert per non-empty bucket, most severe first."""
    alerts = []
    for bucket, products in (
        ("out-of-stock", classified.out_of_stock),
        ("critical", classified.critical),
        ("warning", classified.warning),
    ):
        if products:
            alerts.append(build_alert(bucket, products, now))
    return alerts


def run_classification(
    snapshots: Iterable[ProductSnapshot],
    now: datetime,
    thresholds: AlertThresholds = DEFAULT_THRESHOLDS,
) -> list[InstantAlert]:
    """Classify then aggregate in one step."""
    return aggregate_alerts(classify_snapshots(snapshots, thresholds), now)
