"""
Tests for the Alert Engine — Stockout classification and aggregation.

Covers:
  - Severity tiers and days-until-stockout
  - Threshold overrides
  - One alert per bucket with pluralized messages
"""

from datetime import datetime, timezone

import pytest

from alerts.engine import (
    aggregate_alerts,
    classify_product,
    classify_snapshots,
    days_until_stockout,
    run_classification,
)
from alerts.models import AlertThresholds, ClassifiedProducts, ProductSnapshot
from alerts.providers import DEMO_SNAPSHOTS

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def snap(stock, velocity=0.0, pid="p1", name="Widget"):
    return ProductSnapshot(id=pid, name=name, stock=stock, daily_sales_velocity=velocity)


# ── Days until stockout ────────────────────────────────────────────────


class TestDaysUntilStockout:
    def test_rounds_up(self):
        assert days_until_stockout(4, 1.5) == 3
        assert days_until_stockout(3, 0.8) == 4

    def test_exact_division(self):
        assert days_until_stockout(10, 2) == 5

    def test_no_velocity_is_undefined(self):
        assert days_until_stockout(10, 0) is None
        assert days_until_stockout(10, -1) is None


# ── Classification ─────────────────────────────────────────────────────


class TestClassifyProduct:
    def test_zero_stock_is_out_of_stock(self):
        product = classify_product(snap(0, 2.5))
        assert product.status == "out-of-stock"
        assert product.days_until_stockout == 0

    def test_zero_stock_without_velocity(self):
        product = classify_product(snap(0))
        assert product.status == "out-of-stock"
        assert product.days_until_stockout == 0

    def test_low_stock_is_critical(self):
        product = classify_product(snap(1, 1.2))
        assert product.status == "critical"
        assert product.days_until_stockout == 1

    def test_short_forecast_is_critical(self):
        product = classify_product(snap(4, 1.5))
        assert product.status == "critical"
        assert product.days_until_stockout == 3

    def test_stock_at_warning_bound(self):
        product = classify_product(snap(3, 0.8))
        assert product.status == "warning"
        assert product.days_until_stockout == 4

    def test_zero_velocity_uses_stock_only(self):
        product = classify_product(snap(3, 0))
        assert product.status == "warning"
        assert product.days_until_stockout is None

    def test_forecast_alone_triggers_warning(self):
        product = classify_product(snap(20, 3.0))
        assert product.status == "warning"
        assert product.days_until_stockout == 7

    def test_healthy_product_is_omitted(self):
        assert classify_product(snap(50, 1.0)) is None
        assert classify_product(snap(6, 0)) is None

    def test_threshold_override(self):
        strict = AlertThresholds(critical_stock=10, critical_days=3, warning_stock=20, warning_days=7)
        assert classify_product(snap(8), strict).status == "critical"
        assert classify_product(snap(15), strict).status == "warning"


class TestClassifySnapshots:
    def test_demo_catalogue(self):
        buckets = classify_snapshots(DEMO_SNAPSHOTS)
        assert [p.name for p in buckets.out_of_stock] == ["Premium Widget Pro"]
        assert [p.name for p in buckets.critical] == ["Essential Tool Kit", "Advanced Module"]
        assert [p.name for p in buckets.warning] == ["Basic Component"]

    def test_buckets_are_disjoint(self):
        snapshots = [snap(s, v, pid=f"p{i}") for i, (s, v) in enumerate([(0, 1), (1, 0), (2, 5), (5, 0), (9, 2), (40, 0)])]
        buckets = classify_snapshots(snapshots)
        ids = [p.id for bucket in (buckets.out_of_stock, buckets.critical, buckets.warning) for p in bucket]
        assert len(ids) == len(set(ids))
        assert "p5" not in ids

    def test_empty_input(self):
        assert classify_snapshots([]).is_empty()


# ── Aggregation ────────────────────────────────────────────────────────


class TestAggregateAlerts:
    def test_one_alert_per_bucket_in_severity_order(self):
        alerts = run_classification(DEMO_SNAPSHOTS, NOW)
        assert [a.title for a in alerts] == ["Products Out of Stock", "Critical Stock Levels", "Low Stock Warning"]
        assert [a.type for a in alerts] == ["critical", "critical", "warning"]
        assert [a.action for a in alerts] == ["restock", "urgent-restock", "plan-restock"]

    def test_messages_are_pluralized(self):
        alerts = run_classification(DEMO_SNAPSHOTS, NOW)
        assert alerts[0].message == "1 product is completely out of stock"
        assert alerts[1].message == "2 products need immediate attention"
        assert alerts[2].message == "1 product is running low"

    def test_ids_use_bucket_and_epoch_millis(self):
        millis = int(NOW.timestamp() * 1000)
        alerts = run_classification(DEMO_SNAPSHOTS, NOW)
        assert [a.id for a in alerts] == [
            f"out-of-stock-{millis}",
            f"critical-{millis}",
            f"warning-{millis}",
        ]

    def test_alert_carries_bucket_products(self):
        alerts = run_classification(DEMO_SNAPSHOTS, NOW)
        critical = alerts[1]
        assert [p.id for p in critical.products] == ["2", "4"]
        assert all(not a.dismissed and a.timestamp == NOW for a in alerts)

    def test_empty_buckets_produce_no_alerts(self):
        assert aggregate_alerts(ClassifiedProducts(), NOW) == []

    def test_notification_text(self):
        alert = run_classification([snap(0)], NOW)[0]
        assert alert.notification_text == "Products Out of Stock: 1 product is completely out of stock"

    @pytest.mark.parametrize("count,expected", [(2, "2 products are running low"), (3, "3 products are running low")])
    def test_plural_warning(self, count, expected):
        snapshots = [snap(4, 0, pid=str(i)) for i in range(count)]
        alert = run_classification(snapshots, NOW)[0]
        assert alert.message == expected

    def test_to_dict_uses_wire_names(self):
        alert = run_classification([snap(1, 1.2)], NOW)[0]
        data = alert.to_dict()
        assert data["products"][0] == {
            "id": "p1",
            "name": "Widget",
            "stock": 1,
            "status": "critical",
            "daysUntilStockout": 1,
        }
        assert data["timestamp"] == NOW.isoformat()
