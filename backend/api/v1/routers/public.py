"""
Public Router — Unauthenticated inventory history for embedded storefront views.

The public variant loads the shop's recent log once and applies filters and
pagination in memory, with the same semantics as the authenticated router.
"""

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from api.v1.routers.inventory_history import HistoryPageResponse
from core.errors import SchemaNotProvisioned
from history.query import (
    ERROR_DATA_UNAVAILABLE,
    ERROR_NOT_PROVISIONED,
    HistoryPage,
    HistoryQueryEngine,
    apply_filters,
    parse_history_filters,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/public", tags=["public"])

DEFAULT_SHOP = "default-shop"


@router.get("/inventory-history", response_model=HistoryPageResponse)
async def public_history(
    shop: str = DEFAULT_SHOP,
    change_type: str | None = Query(None, alias="changeType"),
    source: str | None = None,
    product_id: str | None = Query(None, alias="productId"),
    user_id: str | None = Query(None, alias="userId"),
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Filtered, paginated history without authentication."""
    filters = parse_history_filters(
        {
            "change_type": change_type,
            "source": source,
            "product_id": product_id,
            "user_id": user_id,
            "date_from": date_from,
            "date_to": date_to,
        }
    )
    try:
        rows = await HistoryQueryEngine(db).fetch_all(shop)
    except SchemaNotProvisioned:
        return _error_response(ERROR_NOT_PROVISIONED)
    except SQLAlchemyError as exc:
        logger.error("public_history.fetch_failed", shop=shop, error=str(exc))
        return _error_response(ERROR_DATA_UNAVAILABLE)

    page = HistoryPage.paginate(apply_filters(rows, filters), limit=limit, offset=offset)
    return HistoryPageResponse(entries=page.entries, total=page.total, has_more=page.has_more)


def _error_response(kind: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "entries": [],
            "total": 0,
            "has_more": False,
            "error": "Failed to fetch inventory history",
            "kind": kind,
        },
    )
