from __future__ import annotations

from sqlalchemy import event

from ..errors import ImmutableEntryError
from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow

class Product(db.Model):
    """
    Product master data plus the cached on-hand counter.

    STOCK DESIGN DECISION:
    Product.stock is a cache of the ledger, not a source of truth.
    - stock == SUM(INCREASE.quantity) - SUM(DECREASE.quantity) over ledger_entries
    - Only services/ledger_service.py writes it, in the same DB transaction
      that appends the LedgerEntry
    - version_id is the optimistic lock: a writer that read a stale row fails
      its UPDATE with StaleDataError and the unit of work is re-run

    SKU:
    - Unique case-insensitively (sku_key holds the normalized form)
    - Immutable after creation
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku_key", name="uq_products_sku_key"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("cost_cents >= 0", name="ck_products_cost_non_negative"),
        db.Index("ix_products_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    sku_key = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }


class LedgerEntry(db.Model):
    """
    Append-only stock ledger.

    - INCREASE: stock received from a supplier; store_id must be NULL
    - DECREASE: stock sent to a store; store_id is required
    - total_amount_cents is computed once at commit and never recomputed
    - unit_price_cents > 0, except an opening balance for a product with no
      cost, which carries 0
    - stock_before/stock_after snapshot the product counter around the entry
    - Rows are never updated or deleted (see the mapper guards below);
      corrections are compensating entries
    """
    __tablename__ = "ledger_entries"

    id = db.Column(db.Integer, primary_key=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.BigInteger, nullable=False)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    is_opening_balance = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.String(255), nullable=True)

    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    product = db.relationship("Product", backref=db.backref("ledger_entries", lazy="dynamic"))
    store = db.relationship("Store", backref=db.backref("ledger_entries", lazy="dynamic"))
    creator = db.relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        db.CheckConstraint("transaction_type IN ('INCREASE', 'DECREASE')", name="ck_ledger_type"),
        db.CheckConstraint("quantity > 0", name="ck_ledger_quantity_positive"),
        db.CheckConstraint(
            "unit_price_cents > 0 OR (is_opening_balance AND unit_price_cents = 0)",
            name="ck_ledger_unit_price_positive",
        ),
        db.CheckConstraint(
            "(transaction_type = 'DECREASE' AND store_id IS NOT NULL) "
            "OR (transaction_type = 'INCREASE' AND store_id IS NULL)",
            name="ck_ledger_store_matches_type",
        ),
        db.CheckConstraint("stock_after >= 0", name="ck_ledger_stock_after_non_negative"),
        db.Index("ix_ledger_product_date", "product_id", "transaction_date"),
        db.Index("ix_ledger_store_type_date", "store_id", "transaction_type", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} {self.transaction_type} "
            f"product_id={self.product_id} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "is_opening_balance": self.is_opening_balance,
            "notes": self.notes,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_by": self.created_by,
            "created_by_name": self.creator.full_name if self.creator else None,
        }


@event.listens_for(LedgerEntry, "before_update")
def _reject_entry_update(mapper, connection, target):
    raise ImmutableEntryError(f"Ledger entry {target.id} is immutable", entry_id=target.id)


@event.listens_for(LedgerEntry, "before_delete")
def _reject_entry_delete(mapper, connection, target):
    raise ImmutableEntryError(f"Ledger entry {target.id} cannot be deleted", entry_id=target.id)
