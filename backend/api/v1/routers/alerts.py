"""
Alerts Router — Active in-memory stock alerts for the caller's shop.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from alerts.scheduler import SchedulerRegistry
from api.deps import get_current_shop, get_scheduler_registry

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertProductResponse(BaseModel):
    id: str
    name: str
    stock: int
    status: str
    daysUntilStockout: int | None = None


class AlertResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    products: list[AlertProductResponse]
    timestamp: str
    dismissed: bool
    action: str | None


class AlertBufferResponse(BaseModel):
    shop: str
    state: str
    last_check: str | None
    active: list[AlertResponse]
    active_count: int
    critical_count: int
    warning_count: int
    buffered_count: int


class DismissResponse(BaseModel):
    dismissed: int


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=AlertBufferResponse)
async def list_active_alerts(
    shop: str = Depends(get_current_shop),
    registry: SchedulerRegistry = Depends(get_scheduler_registry),
):
    """Active (non-dismissed) alerts plus scheduler status."""
    return registry.get(shop).snapshot().to_dict()


@router.post("/refresh", response_model=AlertBufferResponse)
async def refresh_alerts(
    shop: str = Depends(get_current_shop),
    registry: SchedulerRegistry = Depends(get_scheduler_registry),
):
    """Run a manual check and replace the buffer. A no-op while a check is running."""
    scheduler = registry.get(shop)
    await scheduler.refresh()
    return scheduler.snapshot().to_dict()


@router.patch("/{alert_id}/dismiss", response_model=DismissResponse)
async def dismiss_alert(
    alert_id: str,
    shop: str = Depends(get_current_shop),
    registry: SchedulerRegistry = Depends(get_scheduler_registry),
):
    """Dismiss one alert."""
    if not registry.get(shop).dismiss(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return DismissResponse(dismissed=1)


@router.post("/dismiss-all", response_model=DismissResponse)
async def dismiss_all_alerts(
    shop: str = Depends(get_current_shop),
    registry: SchedulerRegistry = Depends(get_scheduler_registry),
):
    """Dismiss every alert in the buffer."""
    return DismissResponse(dismissed=registry.get(shop).dismiss_all())
