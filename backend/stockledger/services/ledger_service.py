# Overview: Service-layer operations for the stock ledger; the only writer of Product.stock.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, func

from ..errors import InsufficientStockError, LedgerError, NotFoundError, ValidationError
from ..extensions import db
from ..models import LedgerEntry, Product, Store
from ..validation import MAX_STOCK, enforce_rules_transaction
from stockledger.time_utils import normalize_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry
from .paging import paginate
"""
Stock Ledger Invariants (authoritative)

Ledger model:
- Every change to Product.stock is a LedgerEntry appended in the same DB
  transaction that writes the counter. Nothing else writes Product.stock.
- stock == SUM(quantity of INCREASE) - SUM(quantity of DECREASE) per product.
- stock >= 0 at all times; a DECREASE that would break this is rejected whole.
- Entries are append-only; corrections are compensating entries.

Validation order for record_transaction (first failure wins):
1. type / quantity / unit price shape  -> ValidationError
2. product exists and is ACTIVE        -> NotFoundError
3. store rules (DECREASE needs an ACTIVE store, INCREASE forbids one)
                                       -> ValidationError
4. DECREASE does not overdraw stock    -> InsufficientStockError

Concurrency:
- The product row is read with SELECT ... FOR UPDATE (where supported) and
  carries a version_id optimistic lock. A writer that lost the race fails
  with StaleDataError, rolls back and re-runs the whole unit of work, seeing
  the fresh stock.

Time semantics:
- transaction_date is assigned server-side at commit, UTC-naive.
"""

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


def _append_entry(
    product: Product,
    *,
    transaction_type: str,
    quantity: int,
    unit_price_cents: int,
    store_id: int | None,
    notes: str | None,
    actor_id: int | None,
    is_opening_balance: bool = False,
) -> LedgerEntry:
    """Core append logic without locking, validation, retry, or commit.

    Called by record_transaction() and append_opening_balance(). The caller
    must hold the product row for this unit of work.
    """
    stock_before = product.stock or 0
    delta = quantity if transaction_type == "INCREASE" else -quantity
    stock_after = stock_before + delta
    if stock_after < 0:
        raise InsufficientStockError(
            f"Insufficient stock: available {stock_before}, requested {quantity}",
            available=stock_before,
            requested=quantity,
            product_id=product.id,
        )
    if stock_after > MAX_STOCK:
        raise ValidationError(
            f"quantity would raise stock above {MAX_STOCK}",
            field="quantity",
            product_id=product.id,
        )

    # Counter first: the version check fires here, before the entry exists.
    product.stock = stock_after
    db.session.flush()

    entry = LedgerEntry(
        transaction_type=transaction_type,
        product_id=product.id,
        store_id=store_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_amount_cents=quantity * unit_price_cents,
        stock_before=stock_before,
        stock_after=stock_after,
        is_opening_balance=is_opening_balance,
        notes=notes,
        transaction_date=utcnow(),
        created_by=actor_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def append_opening_balance(
    product: Product,
    *,
    quantity: int,
    unit_price_cents: int,
    actor_id: int | None = None,
) -> LedgerEntry:
    """
    Record a new product's starting stock as a synthetic INCREASE.

    Runs inside the caller's unit of work (no commit). unit_price_cents may
    be 0 when the product has no known cost.
    """
    return _append_entry(
        product,
        transaction_type="INCREASE",
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        store_id=None,
        notes="Opening balance",
        actor_id=actor_id,
        is_opening_balance=True,
    )


def _resolve_store(transaction_type: str, store_id) -> int | None:
    if transaction_type == "INCREASE":
        if store_id is not None:
            raise ValidationError(
                "store_id must not be provided for INCREASE transactions",
                field="store_id",
            )
        return None

    if store_id is None:
        raise ValidationError("store_id is required for DECREASE transactions", field="store_id")
    if not isinstance(store_id, int) or isinstance(store_id, bool):
        raise ValidationError("store_id must be an integer", field="store_id")

    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None:
        raise ValidationError(f"Store {store_id} not found", field="store_id", store_id=store_id)
    if not store.is_active:
        raise ValidationError(f"Store {store_id} is inactive", field="store_id", store_id=store_id)
    return store.id


def record_transaction(
    *,
    transaction_type: str,
    product_id: int,
    store_id: int | None = None,
    quantity: int,
    unit_price_cents: int,
    notes: str | None = None,
    actor_id: int | None = None,
) -> LedgerEntry:
    """
    Append one INCREASE or DECREASE entry and move the product's stock.

    Returns the committed entry, or raises a LedgerError with the session
    rolled back (ledger and stock untouched).
    """
    tx_type = enforce_rules_transaction(
        transaction_type=transaction_type,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
    )
    if notes is not None:
        notes = str(notes).strip() or None
        if notes is not None and len(notes) > 255:
            raise ValidationError("notes exceeds max length 255", field="notes")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", field="product_id", product_id=product_id)
        if not product.is_active:
            raise NotFoundError(f"Product {product_id} is inactive", field="product_id", product_id=product_id)

        resolved_store_id = _resolve_store(tx_type, store_id)

        entry = _append_entry(
            product,
            transaction_type=tx_type,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            store_id=resolved_store_id,
            notes=notes,
            actor_id=actor_id,
        )
        db.session.commit()
        return entry

    try:
        entry = run_with_retry(_op)
    except LedgerError as exc:
        logger.warning(
            "Rejected %s product_id=%s qty=%s: %s (%s)",
            tx_type, product_id, quantity, exc.message, exc.code,
        )
        raise

    logger.info(
        "Committed ledger entry id=%s %s product_id=%s store_id=%s qty=%s stock %s->%s",
        entry.id, entry.transaction_type, entry.product_id, entry.store_id,
        entry.quantity, entry.stock_before, entry.stock_after,
    )
    return entry


def get_transaction(entry_id: int) -> LedgerEntry:
    entry = db.session.query(LedgerEntry).filter_by(id=entry_id).first()
    if entry is None:
        raise NotFoundError(f"Transaction {entry_id} not found", field="id", transaction_id=entry_id)
    return entry


def _filtered_entries(
    *,
    product_id: int | None = None,
    store_id: int | None = None,
    transaction_type: str | None = None,
    start: datetime | str | None = None,
    end: datetime | str | None = None,
):
    q = db.session.query(LedgerEntry)
    if product_id is not None:
        q = q.filter(LedgerEntry.product_id == product_id)
    if store_id is not None:
        q = q.filter(LedgerEntry.store_id == store_id)
    if transaction_type is not None:
        q = q.filter(LedgerEntry.transaction_type == transaction_type.strip().upper())

    try:
        start_dt = normalize_datetime(start)
        end_dt = normalize_datetime(end)
    except ValueError as exc:
        raise ValidationError("start and end must be ISO-8601 datetimes", field="start") from exc
    if start_dt is not None:
        q = q.filter(LedgerEntry.transaction_date >= start_dt)
    if end_dt is not None:
        q = q.filter(LedgerEntry.transaction_date <= end_dt)
    return q


def list_transactions(
    *,
    product_id: int | None = None,
    store_id: int | None = None,
    transaction_type: str | None = None,
    start: datetime | str | None = None,
    end: datetime | str | None = None,
    page: int | None = 1,
    limit: int | None = DEFAULT_LIMIT,
) -> dict:
    """
    Page of entries, most recent first; ties broken by id ascending.

    Returns {"items": [LedgerEntry], "total", "page", "page_size", "total_pages"}.
    """
    q = _filtered_entries(
        product_id=product_id,
        store_id=store_id,
        transaction_type=transaction_type,
        start=start,
        end=end,
    ).order_by(LedgerEntry.transaction_date.desc(), LedgerEntry.id.asc())

    return paginate(q, page=page, page_size=limit, default_size=DEFAULT_LIMIT)


def ledger_stock(product_id: int) -> int:
    """Replay the ledger for one product: SUM(+INCREASE, -DECREASE)."""
    signed = case(
        (LedgerEntry.transaction_type == "INCREASE", LedgerEntry.quantity),
        else_=-LedgerEntry.quantity,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(LedgerEntry.product_id == product_id)
        .scalar()
    )
    return int(total or 0)
