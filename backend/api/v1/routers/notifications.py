"""
Notifications Router — Channel test sends and sink health.

Both endpoints always answer 200 with per-channel results; failures are
reported in the body, not raised.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from alerts.channels import NotificationSettings, verify_notification_channels
from alerts.email import ShopInfo
from alerts.scheduler import SchedulerRegistry
from api.deps import get_current_shop, get_scheduler_registry

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationTestRequest(BaseModel):
    settings: NotificationSettings = Field(default_factory=NotificationSettings)
    shop_name: str | None = None
    shop_email: str = ""


class NotificationResultResponse(BaseModel):
    type: str
    success: bool
    message: str


@router.post("/test", response_model=list[NotificationResultResponse])
async def test_notifications(
    body: NotificationTestRequest,
    shop: str = Depends(get_current_shop),
):
    """Send sample products through every enabled channel."""
    shop_info = ShopInfo(name=body.shop_name or shop, email=body.shop_email, myshopify_domain=shop)
    results = await verify_notification_channels(body.settings, shop_info)
    return [r.to_dict() for r in results]


@router.get("/sink", response_model=NotificationResultResponse)
async def verify_alert_sink(
    shop: str = Depends(get_current_shop),
    registry: SchedulerRegistry = Depends(get_scheduler_registry),
):
    """Check that the shop's alert sink is reachable."""
    result = await registry.get(shop).sink.verify()
    return result.to_dict()
