"""
In-memory alert shapes.

Snapshots come in from a provider each cycle, alerts live only in a
scheduler's buffer. Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal

ProductStatus = Literal["out-of-stock", "critical", "warning"]
AlertType = Literal["critical", "warning", "success", "info"]
AlertAction = Literal["restock", "urgent-restock", "plan-restock"]


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    name: str
    stock: int
    daily_sales_velocity: float = 0.0


@dataclass(frozen=True)
class AlertProduct:
    id: str
    name: str
    stock: int
    status: ProductStatus
    days_until_stockout: int | None = None

    def to_dict(self) -> dict:
        data = {"id": self.id, "name": self.name, "stock": self.stock, "status": self.status}
        if self.days_until_stockout is not None:
            data["daysUntilStockout"] = self.days_until_stockout
        return data


@dataclass(frozen=True)
class AlertThresholds:
    """Severity cut-offs. A product is critical at or below either critical
    bound, warning at or below either warning bound."""

    critical_stock: int = 2
    critical_days: int = 3
    warning_stock: int = 5
    warning_days: int = 7

    @classmethod
    def from_settings(cls, settings) -> AlertThresholds:
        return cls(
            critical_stock=settings.alert_critical_stock,
            critical_days=settings.alert_critical_days,
            warning_stock=settings.alert_warning_stock,
            warning_days=settings.alert_warning_days,
        )


@dataclass
class ClassifiedProducts:
    out_of_stock: list[AlertProduct] = field(default_factory=list)
    critical: list[AlertProduct] = field(default_factory=list)
    warning: list[AlertProduct] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.out_of_stock or self.critical or self.warning)


@dataclass(frozen=True)
class InstantAlert:
    id: str
    type: AlertType
    title: str
    message: str
    timestamp: datetime
    products: tuple[AlertProduct, ...] = ()
    dismissed: bool = False
    action: AlertAction | None = None

    @property
    def notification_text(self) -> str:
        return f"{self.title}: {self.message}"

    def dismiss(self) -> InstantAlert:
        return self if self.dismissed else replace(self, dismissed=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "products": [p.to_dict() for p in self.products],
            "timestamp": self.timestamp.isoformat(),
            "dismissed": self.dismissed,
            "action": self.action,
        }
