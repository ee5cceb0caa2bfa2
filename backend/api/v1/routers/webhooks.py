"""
Webhooks Router — Inventory level updates from the commerce platform.

Logging the change must never fail the webhook: the platform always gets a
200 acknowledgement once the payload is parsed.
"""

import structlog
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from history.recorders import log_inventory_level_update
from history.store import HistoryStore

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/inventory-levels")
async def inventory_levels_update(
    request: Request,
    x_shopify_shop_domain: str = Header(...),
    db: AsyncSession = Depends(get_db),
):
    """Record an ADJUSTMENT entry for an inventory level change."""
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})

    entry = await log_inventory_level_update(HistoryStore(db), x_shopify_shop_domain, payload)
    if entry is None:
        logger.warning("webhooks.inventory_log_skipped", shop=x_shopify_shop_domain)
    return {"received": True, "logged": entry is not None}
