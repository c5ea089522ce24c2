# backend/stockledger/services/products_service.py
"""
Products registry.

Owns product identity and metadata (sku, name, description, price, cost,
status). It never writes Product.stock directly: the opening balance of a new
product is appended through the ledger as a synthetic INCREASE entry so the
reconciliation invariant holds with no special case.
"""
from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import enforce_rules_product, enforce_status, require_text
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_opening_balance
from .paging import paginate

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


def _sku_key(sku: str) -> str:
    return sku.strip().upper()


def get_product(product_id: int) -> Product:
    p = db.session.query(Product).filter_by(id=product_id).first()
    if p is None:
        raise NotFoundError(f"Product {product_id} not found", field="id", product_id=product_id)
    return p


def find_products(
    *,
    search: str | None = None,
    status: str | None = None,
    page: int | None = 1,
    page_size: int | None = DEFAULT_PAGE_SIZE,
) -> dict:
    """
    Page of products in creation order (ties by id).

    search matches sku or name, case-insensitive substring.
    Returns {"items": [Product], "total", "page", "page_size", "total_pages"}.
    """
    q = db.session.query(Product)

    if search is not None and search.strip():
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                db.func.lower(Product.sku).like(pattern),
                db.func.lower(Product.name).like(pattern),
            )
        )

    if status is not None and status.strip():
        q = q.filter(Product.status == enforce_status(status))

    q = q.order_by(Product.created_at.asc(), Product.id.asc())
    return paginate(q, page=page, page_size=page_size, default_size=DEFAULT_PAGE_SIZE)


def create_product(
    *,
    sku: str,
    name: str,
    description: str | None = None,
    price_cents: int = 0,
    cost_cents: int = 0,
    initial_stock: int = 0,
    actor_id: int | None = None,
) -> Product:
    """
    Create a product; a positive initial_stock becomes an opening INCREASE
    entry (unit price = cost) in the same DB transaction.

    Raises:
        ValidationError: blank sku/name, negative price/cost/initial stock
        ConflictError: sku already exists (case-insensitive)
    """
    sku = require_text("sku", sku)
    name = require_text("name", name)
    if len(sku) > 64:
        raise ValidationError("sku exceeds max length 64", field="sku")
    enforce_rules_product({"price_cents": price_cents, "cost_cents": cost_cents, "stock": initial_stock})

    def _op():
        existing = db.session.query(Product).filter(Product.sku_key == _sku_key(sku)).first()
        if existing:
            raise ConflictError("SKU already exists.", field="sku", sku=sku)

        p = Product(
            sku=sku,
            sku_key=_sku_key(sku),
            name=name,
            description=description,
            price_cents=price_cents,
            cost_cents=cost_cents,
            stock=0,
            status="ACTIVE",
            created_by=actor_id,
            updated_by=actor_id,
        )
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the opening entry

        if initial_stock > 0:
            append_opening_balance(
                p,
                quantity=initial_stock,
                unit_price_cents=cost_cents,
                actor_id=actor_id,
            )

        db.session.commit()
        return p

    try:
        p = run_with_retry(_op)
    except IntegrityError as exc:
        raise ConflictError("SKU already exists.", field="sku", sku=sku) from exc
    logger.info("Created product id=%s sku=%s opening_stock=%s", p.id, p.sku, initial_stock)
    return p


def update_product(
    *,
    product_id: int,
    name: str,
    description: str | None = None,
    price_cents: int,
    cost_cents: int,
    actor_id: int | None = None,
) -> Product:
    """
    Update product metadata. sku and stock are not writable here.

    Raises NotFoundError if the product does not exist.
    """
    name = require_text("name", name)
    enforce_rules_product({"price_cents": price_cents, "cost_cents": cost_cents})

    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if p is None:
            raise NotFoundError(f"Product {product_id} not found", field="id", product_id=product_id)

        p.name = name
        p.description = description
        p.price_cents = price_cents
        p.cost_cents = cost_cents
        p.updated_by = actor_id
        db.session.commit()
        return p

    return run_with_retry(_op)


def set_product_status(*, product_id: int, status: str, actor_id: int | None = None) -> Product:
    status = enforce_status(status)

    def _op():
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if p is None:
            raise NotFoundError(f"Product {product_id} not found", field="id", product_id=product_id)
        if p.status != status:
            p.status = status
            p.updated_by = actor_id
        db.session.commit()
        return p

    p = run_with_retry(_op)
    logger.info("Product id=%s status=%s", p.id, p.status)
    return p


def delete_product(*, product_id: int, actor_id: int | None = None) -> Product:
    """
    Soft-delete a product.

    Soft-delete only: preserve IDs and ledger history.
    """
    return set_product_status(product_id=product_id, status="INACTIVE", actor_id=actor_id)
