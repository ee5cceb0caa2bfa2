"""
History Query Engine — filtered, paginated reads and aggregate statistics.

Filters are independent and optional; an entry matches when its shop
equals the requested shop and every supplied predicate holds. Results are
ordered newest first with insertion order breaking timestamp ties.

Read failures never propagate: the result carries ``error`` set to
``data_unavailable`` or ``not_provisioned`` and empty data.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import FilterValidationError, SchemaNotProvisioned
from db.models import InventoryHistory, utcnow
from db.schema import ensure_provisioned
from history.entries import CHANGE_TYPE_VALUES, SOURCE_VALUES, InventoryLogEntry

logger = structlog.get_logger()

TOP_PRODUCTS_LIMIT = 10
RECENT_WINDOW = timedelta(hours=24)
FETCH_CHUNK_SIZE = 1000

ERROR_DATA_UNAVAILABLE = "data_unavailable"
ERROR_NOT_PROVISIONED = "not_provisioned"


# ──────────────────────────────────────────────────────────────────────────
# Filters
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class HistoryFilters:
    change_type: str | None = None
    source: str | None = None
    product_id: str | None = None
    user_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    def matches(self, entry) -> bool:
        """Client-side predicate with the same semantics as the SQL path."""
        if self.change_type and entry.change_type != self.change_type:
            return False
        if self.source and entry.source != self.source:
            return False
        if self.product_id and entry.product_id != self.product_id:
            return False
        if self.user_id and entry.user_id != self.user_id:
            return False
        if self.date_from and entry.timestamp < self.date_from:
            return False
        if self.date_to and entry.timestamp > self.date_to:
            return False
        return True

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def parse_datetime(field_name: str, value) -> datetime | None:
    """Parse an ISO date or datetime into naive UTC. Raises FilterValidationError."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise FilterValidationError(field_name, value, "not an ISO-8601 date") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_choice(field_name: str, value, choices: tuple[str, ...]) -> str | None:
    if value is None or value == "":
        return None
    text = str(value).strip().upper()
    if text not in choices:
        raise FilterValidationError(field_name, value, "unknown value")
    return text


def _parse_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_history_filters(raw: Mapping) -> HistoryFilters:
    """Build filters from request parameters.

    Accepts snake_case or camelCase keys. A value that fails to parse is
    dropped (the filter is treated as absent) and logged.
    """

    def pick(*keys):
        for key in keys:
            if key in raw and raw[key] is not None:
                return raw[key]
        return None

    parsers = {
        "change_type": lambda: _parse_choice("change_type", pick("change_type", "changeType"), CHANGE_TYPE_VALUES),
        "source": lambda: _parse_choice("source", pick("source"), SOURCE_VALUES),
        "product_id": lambda: _parse_text(pick("product_id", "productId")),
        "user_id": lambda: _parse_text(pick("user_id", "userId")),
        "date_from": lambda: parse_datetime("date_from", pick("date_from", "dateFrom")),
        "date_to": lambda: parse_datetime("date_to", pick("date_to", "dateTo")),
    }

    values = {}
    for name, parse in parsers.items():
        try:
            values[name] = parse()
        except FilterValidationError as exc:
            logger.warning("history.filter_ignored", field=exc.field, value=str(exc.value), reason=str(exc))
            values[name] = None
    return HistoryFilters(**values)


def apply_filters(entries: Iterable, filters: HistoryFilters) -> list:
    return [e for e in entries if filters.matches(e)]


def sort_newest_first(entries: Iterable) -> list:
    """Timestamp descending; stable, so equal timestamps keep their input order."""
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)


# ──────────────────────────────────────────────────────────────────────────
# Results
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class HistoryPage:
    entries: list[InventoryLogEntry] = field(default_factory=list)
    total: int = 0
    has_more: bool = False
    error: str | None = None

    @classmethod
    def paginate(cls, matched: list, limit: int, offset: int) -> "HistoryPage":
        offset = max(offset, 0)
        page = matched[offset : offset + max(limit, 0)]
        return cls(
            entries=[InventoryLogEntry.model_validate(e) for e in page],
            total=len(matched),
            has_more=offset + len(page) < len(matched),
        )


@dataclass
class TopProduct:
    product_id: str
    product_title: str
    change_count: int


@dataclass
class HistoryStats:
    total_changes: int = 0
    changes_by_type: dict[str, int] = field(default_factory=dict)
    changes_by_source: dict[str, int] = field(default_factory=dict)
    top_products: list[TopProduct] = field(default_factory=list)
    recent_activity: int = 0
    error: str | None = None


def compute_stats(entries: Iterable, now: datetime | None = None) -> HistoryStats:
    """Aggregate counts over already-filtered entries.

    Top products are ranked by count; equal counts keep the order in which
    the product was first seen in ``entries``.
    """
    now = now or utcnow()
    recent_cutoff = now - RECENT_WINDOW

    stats = HistoryStats()
    products: dict[str, TopProduct] = {}
    for entry in entries:
        stats.total_changes += 1
        stats.changes_by_type[entry.change_type] = stats.changes_by_type.get(entry.change_type, 0) + 1
        stats.changes_by_source[entry.source] = stats.changes_by_source.get(entry.source, 0) + 1
        product = products.get(entry.product_id)
        if product is None:
            product = products[entry.product_id] = TopProduct(entry.product_id, entry.product_title, 0)
        product.change_count += 1
        if entry.timestamp > recent_cutoff:
            stats.recent_activity += 1

    ranked = sorted(products.values(), key=lambda p: p.change_count, reverse=True)
    stats.top_products = ranked[:TOP_PRODUCTS_LIMIT]
    return stats


# ──────────────────────────────────────────────────────────────────────────
# Engine
# ──────────────────────────────────────────────────────────────────────────


def _conditions(shop: str, filters: HistoryFilters) -> list:
    conditions = [InventoryHistory.shop == shop]
    if filters.change_type:
        conditions.append(InventoryHistory.change_type == filters.change_type)
    if filters.source:
        conditions.append(InventoryHistory.source == filters.source)
    if filters.product_id:
        conditions.append(InventoryHistory.product_id == filters.product_id)
    if filters.user_id:
        conditions.append(InventoryHistory.user_id == filters.user_id)
    if filters.date_from:
        conditions.append(InventoryHistory.timestamp >= filters.date_from)
    if filters.date_to:
        conditions.append(InventoryHistory.timestamp <= filters.date_to)
    return conditions


NEWEST_FIRST = (InventoryHistory.timestamp.desc(), InventoryHistory.seq.asc())


class HistoryQueryEngine:
    """Read-only access to the inventory history of one database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def query(
        self,
        shop: str,
        filters: HistoryFilters | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> HistoryPage:
        filters = filters or HistoryFilters()
        offset = max(offset, 0)
        limit = max(limit, 0)
        try:
            await ensure_provisioned(self.db)
            conditions = _conditions(shop, filters)
            total = (
                await self.db.execute(select(func.count()).select_from(InventoryHistory).where(*conditions))
            ).scalar() or 0
            rows = []
            if limit:
                result = await self.db.execute(
                    select(InventoryHistory).where(*conditions).order_by(*NEWEST_FIRST).offset(offset).limit(limit)
                )
                rows = result.scalars().all()
        except SchemaNotProvisioned as exc:
            logger.warning("history.not_provisioned", shop=shop, error=str(exc))
            return HistoryPage(error=ERROR_NOT_PROVISIONED)
        except SQLAlchemyError as exc:
            logger.error("history.query_failed", shop=shop, error=str(exc))
            return HistoryPage(error=ERROR_DATA_UNAVAILABLE)

        entries = [InventoryLogEntry.model_validate(row) for row in rows]
        return HistoryPage(entries=entries, total=total, has_more=offset + len(entries) < total)

    async def stats(
        self,
        shop: str,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        now: datetime | None = None,
    ) -> HistoryStats:
        filters = HistoryFilters(date_from=date_from, date_to=date_to)
        try:
            await ensure_provisioned(self.db)
            result = await self.db.execute(
                select(
                    InventoryHistory.change_type,
                    InventoryHistory.source,
                    InventoryHistory.product_id,
                    InventoryHistory.product_title,
                    InventoryHistory.timestamp,
                )
                .where(*_conditions(shop, filters))
                .order_by(*NEWEST_FIRST)
            )
            rows = result.all()
        except SchemaNotProvisioned as exc:
            logger.warning("history.not_provisioned", shop=shop, error=str(exc))
            return HistoryStats(error=ERROR_NOT_PROVISIONED)
        except SQLAlchemyError as exc:
            logger.error("history.stats_failed", shop=shop, error=str(exc))
            return HistoryStats(error=ERROR_DATA_UNAVAILABLE)
        return compute_stats(rows, now=now)

    async def product_history(self, shop: str, product_id: str, limit: int = 50) -> list[InventoryLogEntry]:
        page = await self.query(shop, HistoryFilters(product_id=product_id), limit=limit)
        return page.entries

    async def fetch_all(self, shop: str, chunk_size: int | None = None) -> list[InventoryHistory]:
        """Every newest-first row for a shop, unfiltered, read in chunks. Raises on store errors."""
        await ensure_provisioned(self.db)
        chunk_size = chunk_size or FETCH_CHUNK_SIZE
        stmt = select(InventoryHistory).where(InventoryHistory.shop == shop).order_by(*NEWEST_FIRST)
        rows: list[InventoryHistory] = []
        while True:
            result = await self.db.execute(stmt.offset(len(rows)).limit(chunk_size))
            chunk = list(result.scalars().all())
            rows.extend(chunk)
            if len(chunk) < chunk_size:
                return rows
