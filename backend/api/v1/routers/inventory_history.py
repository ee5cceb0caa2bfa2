"""
Inventory History Router — Authenticated log queries and statistics.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_shop, get_db
from history.entries import (
    CHANGE_TYPE_INFO,
    SOURCE_INFO,
    InventoryLogEntry,
)
from history.query import HistoryQueryEngine, parse_history_filters

router = APIRouter(prefix="/api/v1/inventory-history", tags=["inventory-history"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class HistoryPageResponse(BaseModel):
    entries: list[InventoryLogEntry]
    total: int
    has_more: bool
    error: str | None = None


class TopProductResponse(BaseModel):
    product_id: str
    product_title: str
    change_count: int


class HistoryStatsResponse(BaseModel):
    total_changes: int
    changes_by_type: dict[str, int]
    changes_by_source: dict[str, int]
    top_products: list[TopProductResponse]
    recent_activity: int
    error: str | None = None


class HistoryMetaResponse(BaseModel):
    change_types: dict[str, dict[str, str]]
    sources: dict[str, dict[str, str]]


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=HistoryPageResponse)
async def list_history(
    change_type: str | None = None,
    source: str | None = None,
    product_id: str | None = None,
    user_id: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    shop: str = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    """List log entries for the caller's shop, newest first."""
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
    page = await HistoryQueryEngine(db).query(shop, filters, limit=limit, offset=offset)
    return HistoryPageResponse(entries=page.entries, total=page.total, has_more=page.has_more, error=page.error)


@router.get("/stats", response_model=HistoryStatsResponse)
async def get_history_stats(
    date_from: str | None = None,
    date_to: str | None = None,
    shop: str = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    """Aggregate counts by type, source and product."""
    window = parse_history_filters({"date_from": date_from, "date_to": date_to})
    stats = await HistoryQueryEngine(db).stats(shop, date_from=window.date_from, date_to=window.date_to)
    return HistoryStatsResponse(
        total_changes=stats.total_changes,
        changes_by_type=stats.changes_by_type,
        changes_by_source=stats.changes_by_source,
        top_products=[
            TopProductResponse(product_id=p.product_id, product_title=p.product_title, change_count=p.change_count)
            for p in stats.top_products
        ],
        recent_activity=stats.recent_activity,
        error=stats.error,
    )


@router.get("/meta", response_model=HistoryMetaResponse)
async def get_history_meta():
    """Display labels for change types and sources."""
    return HistoryMetaResponse(change_types=CHANGE_TYPE_INFO, sources=SOURCE_INFO)


@router.get("/products/{product_id}", response_model=list[InventoryLogEntry])
async def get_product_history(
    product_id: str,
    limit: int = Query(50, ge=1, le=200),
    shop: str = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    """Latest log entries for a single product."""
    return await HistoryQueryEngine(db).product_history(shop, product_id, limit=limit)
