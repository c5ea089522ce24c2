# Overview: Service-layer read models over the stock ledger; never writes.

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func

from stockledger.errors import NotFoundError, ValidationError
from stockledger.extensions import db
from stockledger.models import LedgerEntry, Product, Store
from stockledger.time_utils import normalize_datetime, to_utc_z, utcnow

"""
Every figure here is recomputed from committed ledger_entries on each call.
Nothing is cached, so two calls with no write in between return identical
results, and each result can be reproduced by replaying the ledger.

Ordering contracts:
- sales_by_store: total_sales_cents desc, store id asc
- top_products: revenue_cents desc, product id asc
"""

DATE_PRESETS = ("all", "today", "week", "month")
MAX_TOP_PRODUCTS = 100


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = normalize_datetime(start)
        end_dt = normalize_datetime(end)
    except ValueError as exc:
        raise ValidationError("start and end must be ISO-8601 datetimes", field="start") from exc
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must not be after end", field="start")
    return start_dt, end_dt


def _require_store(store_id: int | None) -> None:
    if store_id is None:
        return
    if db.session.query(Store.id).filter_by(id=store_id).first() is None:
        raise NotFoundError(f"Store {store_id} not found", field="store_id", store_id=store_id)


def _apply_filters(query, *, store_id, start_dt, end_dt):
    if store_id is not None:
        query = query.filter(LedgerEntry.store_id == store_id)
    if start_dt is not None:
        query = query.filter(LedgerEntry.transaction_date >= start_dt)
    if end_dt is not None:
        query = query.filter(LedgerEntry.transaction_date <= end_dt)
    return query


def date_range_for(preset: str | None, now: datetime | None = None, *, offset_minutes: int = 0):
    """
    Resolve a report preset (all, today, week, month) to UTC bounds.

    Day/week/month boundaries are taken on the display clock (UTC shifted by
    offset_minutes) and converted back to UTC-naive; "all" is unbounded.
    Weeks start on Monday.
    """
    preset = (preset or "all").strip().lower()
    if preset not in DATE_PRESETS:
        raise ValidationError(f"range must be one of: {', '.join(DATE_PRESETS)}", field="range")
    if preset == "all":
        return None, None

    now_utc = now or utcnow()
    shift = timedelta(minutes=offset_minutes)
    local_now = now_utc + shift
    day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    if preset == "today":
        local_start = day_start
    elif preset == "week":
        local_start = day_start - timedelta(days=day_start.weekday())
    else:
        local_start = day_start.replace(day=1)

    return local_start - shift, now_utc


def summarize(*, store_id: int | None = None, start=None, end=None) -> dict:
    """
    Totals over the filtered entries.

    gross_margin_cents = total_decrease_amount_cents - total_increase_amount_cents.
    A store filter keeps only that store's entries, which are all DECREASE.
    """
    start_dt, end_dt = _parse_range(start, end)
    _require_store(store_id)

    is_increase = LedgerEntry.transaction_type == "INCREASE"
    is_decrease = LedgerEntry.transaction_type == "DECREASE"

    query = db.session.query(
        func.count(LedgerEntry.id).label("total"),
        func.coalesce(func.sum(case((is_increase, 1), else_=0)), 0).label("increase_count"),
        func.coalesce(func.sum(case((is_decrease, 1), else_=0)), 0).label("decrease_count"),
        func.coalesce(func.sum(case((is_increase, LedgerEntry.total_amount_cents), else_=0)), 0).label("increase_amount"),
        func.coalesce(func.sum(case((is_decrease, LedgerEntry.total_amount_cents), else_=0)), 0).label("decrease_amount"),
    )
    row = _apply_filters(query, store_id=store_id, start_dt=start_dt, end_dt=end_dt).one()

    increase_amount = int(row.increase_amount or 0)
    decrease_amount = int(row.decrease_amount or 0)

    return {
        "store_id": store_id,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "total_transactions": int(row.total or 0),
        "increase_count": int(row.increase_count or 0),
        "decrease_count": int(row.decrease_count or 0),
        "total_increase_amount_cents": increase_amount,
        "total_decrease_amount_cents": decrease_amount,
        "gross_margin_cents": decrease_amount - increase_amount,
    }


def sales_by_store(*, store_id: int | None = None, start=None, end=None) -> dict:
    start_dt, end_dt = _parse_range(start, end)
    _require_store(store_id)

    total_sales = func.coalesce(func.sum(LedgerEntry.total_amount_cents), 0)
    query = db.session.query(
        LedgerEntry.store_id.label("store_id"),
        func.count(LedgerEntry.id).label("transaction_count"),
        total_sales.label("total_sales_cents"),
    ).filter(LedgerEntry.transaction_type == "DECREASE")
    query = _apply_filters(query, store_id=store_id, start_dt=start_dt, end_dt=end_dt)

    rows = (
        query.group_by(LedgerEntry.store_id)
        .order_by(total_sales.desc(), LedgerEntry.store_id.asc())
        .all()
    )

    stores = {}
    if rows:
        store_ids = [row.store_id for row in rows]
        stores = {s.id: s for s in db.session.query(Store).filter(Store.id.in_(store_ids)).all()}

    return {
        "store_id": store_id,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": [
            {
                "store": stores[row.store_id].to_dict(),
                "transaction_count": int(row.transaction_count or 0),
                "total_sales_cents": int(row.total_sales_cents or 0),
            }
            for row in rows
        ],
    }


def top_products(*, store_id: int | None = None, start=None, end=None, limit: int = 5) -> dict:
    """
    Products ranked by DECREASE revenue; ties broken by product id ascending.
    """
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1 or limit > MAX_TOP_PRODUCTS:
        raise ValidationError(f"limit must be between 1 and {MAX_TOP_PRODUCTS}", field="limit")

    start_dt, end_dt = _parse_range(start, end)
    _require_store(store_id)

    revenue = func.coalesce(func.sum(LedgerEntry.total_amount_cents), 0)
    query = db.session.query(
        LedgerEntry.product_id.label("product_id"),
        func.coalesce(func.sum(LedgerEntry.quantity), 0).label("units_sold"),
        revenue.label("revenue_cents"),
    ).filter(LedgerEntry.transaction_type == "DECREASE")
    query = _apply_filters(query, store_id=store_id, start_dt=start_dt, end_dt=end_dt)

    rows = (
        query.group_by(LedgerEntry.product_id)
        .order_by(revenue.desc(), LedgerEntry.product_id.asc())
        .limit(limit)
        .all()
    )

    products = {}
    if rows:
        product_ids = [row.product_id for row in rows]
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()}

    return {
        "store_id": store_id,
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "limit": limit,
        "rows": [
            {
                "product": products[row.product_id].to_dict(),
                "units_sold": int(row.units_sold or 0),
                "revenue_cents": int(row.revenue_cents or 0),
            }
            for row in rows
        ],
    }


def _ledger_totals(product_ids: list[int] | None = None) -> dict[int, int]:
    signed = case(
        (LedgerEntry.transaction_type == "INCREASE", LedgerEntry.quantity),
        else_=-LedgerEntry.quantity,
    )
    query = db.session.query(
        LedgerEntry.product_id,
        func.coalesce(func.sum(signed), 0),
    )
    if product_ids is not None:
        query = query.filter(LedgerEntry.product_id.in_(product_ids))
    return {pid: int(total or 0) for pid, total in query.group_by(LedgerEntry.product_id).all()}


def _reconcile_row(product: Product, ledger_stock: int) -> dict:
    return {
        "product_id": product.id,
        "sku": product.sku,
        "stock": product.stock,
        "ledger_stock": ledger_stock,
        "in_sync": product.stock == ledger_stock,
    }


def reconcile_product(product_id: int) -> dict:
    """Compare one product's cached counter with its replayed ledger."""
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", field="product_id", product_id=product_id)
    totals = _ledger_totals([product_id])
    return _reconcile_row(product, totals.get(product_id, 0))


def reconcile_all() -> dict:
    """
    Reconcile every product; drifted rows are listed separately.

    Read-only: a drift is reported, never repaired here.
    """
    products = db.session.query(Product).order_by(Product.id.asc()).all()
    totals = _ledger_totals()
    rows = [_reconcile_row(p, totals.get(p.id, 0)) for p in products]
    return {
        "checked_at": to_utc_z(datetime.now(timezone.utc)),
        "product_count": len(rows),
        "in_sync": all(r["in_sync"] for r in rows),
        "drift": [r for r in rows if not r["in_sync"]],
        "rows": rows,
    }
