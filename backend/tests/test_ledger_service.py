"""
Ledger engine tests.

Verifies:
- Stock moves only through appended entries (scenarios A-D)
- Validation order: shape, product, store, stock
- Rejected transactions leave ledger and stock untouched
- Entries are append-only
- Listing order and filters
"""

from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from stockledger.errors import (
    ImmutableEntryError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stockledger.models import LedgerEntry, Product
from stockledger.services import ledger_service, products_service, store_service
from stockledger.validation import MAX_QUANTITY, MAX_STOCK


def _stocked_product(admin_user, stock=10, sku="SKU-A"):
    return products_service.create_product(
        sku=sku,
        name=f"Product {sku}",
        price_cents=400,
        cost_cents=150,
        initial_stock=stock,
        actor_id=admin_user.id,
    )


def _entry_count(db_session, product_id=None, opening=None) -> int:
    q = db_session.query(LedgerEntry)
    if product_id is not None:
        q = q.filter(LedgerEntry.product_id == product_id)
    if opening is not None:
        q = q.filter(LedgerEntry.is_opening_balance.is_(opening))
    return q.count()


def _stock(db_session, product_id) -> int:
    db_session.expire_all()
    return db_session.query(Product).filter_by(id=product_id).one().stock


# =============================================================================
# SCENARIOS
# =============================================================================


class TestScenarios:

    def test_increase_adds_stock_and_entry(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=10)

        entry = ledger_service.record_transaction(
            transaction_type="INCREASE",
            product_id=p.id,
            quantity=5,
            unit_price_cents=200,
            actor_id=admin_user.id,
        )

        assert _stock(db_session, p.id) == 15
        assert entry.total_amount_cents == 1000
        assert entry.stock_before == 10
        assert entry.stock_after == 15
        assert entry.store_id is None
        assert entry.created_by == admin_user.id
        assert _entry_count(db_session, p.id, opening=False) == 1

    def test_overdraw_is_rejected_without_effect(self, db_session, admin_user, store):
        p = _stocked_product(admin_user, stock=15)
        before = _entry_count(db_session)

        with pytest.raises(InsufficientStockError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="DECREASE",
                product_id=p.id,
                store_id=store.id,
                quantity=20,
                unit_price_cents=300,
            )

        assert excinfo.value.available == 15
        assert excinfo.value.requested == 20
        assert excinfo.value.to_dict()["code"] == "insufficient_stock"
        assert _stock(db_session, p.id) == 15
        assert _entry_count(db_session) == before

    def test_decrease_to_zero(self, db_session, admin_user, store):
        p = _stocked_product(admin_user, stock=15)

        entry = ledger_service.record_transaction(
            transaction_type="DECREASE",
            product_id=p.id,
            store_id=store.id,
            quantity=15,
            unit_price_cents=300,
        )

        assert _stock(db_session, p.id) == 0
        assert entry.total_amount_cents == 4500
        assert entry.store_id == store.id
        assert entry.stock_after == 0

    def test_increase_with_store_is_rejected(self, db_session, admin_user, store):
        p = _stocked_product(admin_user, stock=3)

        with pytest.raises(ValidationError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="INCREASE",
                product_id=p.id,
                store_id=store.id,
                quantity=1,
                unit_price_cents=100,
            )

        assert excinfo.value.field == "store_id"
        assert _stock(db_session, p.id) == 3


# =============================================================================
# OPENING BALANCE
# =============================================================================


class TestOpeningBalance:

    def test_initial_stock_is_a_synthetic_increase(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=10)

        entries = db_session.query(LedgerEntry).filter_by(product_id=p.id).all()
        assert len(entries) == 1
        opening = entries[0]
        assert opening.transaction_type == "INCREASE"
        assert opening.is_opening_balance is True
        assert opening.quantity == 10
        assert opening.unit_price_cents == 150
        assert opening.total_amount_cents == 1500
        assert ledger_service.ledger_stock(p.id) == p.stock == 10

    def test_zero_initial_stock_writes_no_entry(self, db_session, product):
        assert product.stock == 0
        assert _entry_count(db_session, product.id) == 0

    def test_zero_cost_opening_balance(self, db_session, admin_user):
        p = products_service.create_product(sku="FREE", name="Free sample", initial_stock=4)

        opening = db_session.query(LedgerEntry).filter_by(product_id=p.id).one()
        assert opening.is_opening_balance is True
        assert opening.unit_price_cents == 0
        assert opening.total_amount_cents == 0

    def test_zero_price_only_allowed_on_opening_balance(self, db_session, product):
        db_session.add(LedgerEntry(
            transaction_type="INCREASE",
            product_id=product.id,
            quantity=1,
            unit_price_cents=0,
            total_amount_cents=0,
            stock_before=0,
            stock_after=1,
            is_opening_balance=False,
            transaction_date=datetime(2026, 1, 1),
        ))
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_initial_stock_cap(self, db_session):
        with pytest.raises(ValidationError) as excinfo:
            products_service.create_product(sku="BIG", name="Big", initial_stock=MAX_QUANTITY + 1)
        assert excinfo.value.field == "stock"
        assert db_session.query(Product).filter_by(sku="BIG").first() is None


# =============================================================================
# VALIDATION ORDER
# =============================================================================


class TestValidation:

    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"transaction_type": "ADJUST"}, "transaction_type"),
            ({"transaction_type": None}, "transaction_type"),
            ({"quantity": 0}, "quantity"),
            ({"quantity": -3}, "quantity"),
            ({"quantity": 1.5}, "quantity"),
            ({"quantity": True}, "quantity"),
            ({"quantity": 1_000_001}, "quantity"),
            ({"quantity": 10**19}, "quantity"),
            ({"unit_price_cents": 0}, "unit_price_cents"),
            ({"unit_price_cents": -1}, "unit_price_cents"),
            ({"unit_price_cents": "100"}, "unit_price_cents"),
            ({"unit_price_cents": 1_000_000_000}, "unit_price_cents"),
        ],
    )
    def test_shape_rules(self, db_session, admin_user, kwargs, field):
        p = _stocked_product(admin_user, stock=5)
        params = {
            "transaction_type": "INCREASE",
            "product_id": p.id,
            "quantity": 1,
            "unit_price_cents": 100,
        }
        params.update(kwargs)

        with pytest.raises(ValidationError) as excinfo:
            ledger_service.record_transaction(**params)

        assert excinfo.value.field == field
        assert _stock(db_session, p.id) == 5

    def test_type_is_case_insensitive(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=1)
        entry = ledger_service.record_transaction(
            transaction_type="increase",
            product_id=p.id,
            quantity=1,
            unit_price_cents=100,
        )
        assert entry.transaction_type == "INCREASE"

    def test_shape_checked_before_product(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.record_transaction(
                transaction_type="INCREASE",
                product_id=999,
                quantity=0,
                unit_price_cents=100,
            )

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="INCREASE",
                product_id=999,
                quantity=1,
                unit_price_cents=100,
            )
        assert excinfo.value.field == "product_id"

    def test_inactive_product(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=5)
        products_service.delete_product(product_id=p.id)

        with pytest.raises(NotFoundError):
            ledger_service.record_transaction(
                transaction_type="INCREASE",
                product_id=p.id,
                quantity=1,
                unit_price_cents=100,
            )

    def test_product_checked_before_store(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            ledger_service.record_transaction(
                transaction_type="DECREASE",
                product_id=999,
                store_id=None,
                quantity=1,
                unit_price_cents=100,
            )

    def test_decrease_requires_store(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=5)
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="DECREASE",
                product_id=p.id,
                quantity=1,
                unit_price_cents=100,
            )
        assert excinfo.value.field == "store_id"

    def test_decrease_unknown_store(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=5)
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="DECREASE",
                product_id=p.id,
                store_id=999,
                quantity=1,
                unit_price_cents=100,
            )
        assert excinfo.value.field == "store_id"

    def test_decrease_inactive_store(self, db_session, admin_user, store):
        p = _stocked_product(admin_user, stock=5)
        store_service.delete_store(store.id)

        with pytest.raises(ValidationError):
            ledger_service.record_transaction(
                transaction_type="DECREASE",
                product_id=p.id,
                store_id=store.id,
                quantity=1,
                unit_price_cents=100,
            )
        assert _stock(db_session, p.id) == 5

    def test_store_checked_before_stock(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=1)
        with pytest.raises(ValidationError):
            ledger_service.record_transaction(
                transaction_type="DECREASE",
                product_id=p.id,
                store_id=999,
                quantity=50,
                unit_price_cents=100,
            )

    def test_notes_too_long(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=1)
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="INCREASE",
                product_id=p.id,
                quantity=1,
                unit_price_cents=100,
                notes="x" * 256,
            )
        assert excinfo.value.field == "notes"


# =============================================================================
# INVARIANTS
# =============================================================================


class TestInvariants:

    def test_stock_matches_ledger_after_mixed_sequence(self, db_session, admin_user, store, other_store):
        p = _stocked_product(admin_user, stock=4)
        moves = [
            ("INCREASE", None, 10),
            ("DECREASE", store.id, 7),
            ("DECREASE", other_store.id, 30),  # rejected
            ("INCREASE", None, 2),
            ("DECREASE", other_store.id, 9),
        ]
        for tx_type, store_id, qty in moves:
            try:
                ledger_service.record_transaction(
                    transaction_type=tx_type,
                    product_id=p.id,
                    store_id=store_id,
                    quantity=qty,
                    unit_price_cents=100,
                )
            except InsufficientStockError:
                pass
            assert _stock(db_session, p.id) >= 0
            assert _stock(db_session, p.id) == ledger_service.ledger_stock(p.id)

        assert _stock(db_session, p.id) == 0

    def test_stock_snapshots_chain(self, db_session, admin_user, store):
        p = _stocked_product(admin_user, stock=5)
        ledger_service.record_transaction(
            transaction_type="DECREASE", product_id=p.id, store_id=store.id,
            quantity=2, unit_price_cents=100,
        )
        ledger_service.record_transaction(
            transaction_type="INCREASE", product_id=p.id,
            quantity=4, unit_price_cents=100,
        )

        entries = (
            db_session.query(LedgerEntry)
            .filter_by(product_id=p.id)
            .order_by(LedgerEntry.id.asc())
            .all()
        )
        for prev, nxt in zip(entries, entries[1:]):
            assert nxt.stock_before == prev.stock_after
        assert entries[-1].stock_after == _stock(db_session, p.id) == 7

    def test_other_products_unaffected(self, db_session, admin_user, store):
        a = _stocked_product(admin_user, stock=5, sku="A")
        b = _stocked_product(admin_user, stock=5, sku="B")

        ledger_service.record_transaction(
            transaction_type="DECREASE", product_id=a.id, store_id=store.id,
            quantity=5, unit_price_cents=100,
        )

        assert _stock(db_session, a.id) == 0
        assert _stock(db_session, b.id) == 5

    def test_largest_entry_amount_is_stored_exactly(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=10)

        entry = ledger_service.record_transaction(
            transaction_type="INCREASE", product_id=p.id,
            quantity=MAX_QUANTITY, unit_price_cents=999_999_999,
        )

        db_session.expire_all()
        stored = db_session.get(LedgerEntry, entry.id)
        assert stored.total_amount_cents == 999_999_999_000_000
        assert _stock(db_session, p.id) == MAX_QUANTITY + 10

    def test_increase_cannot_overflow_stock(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=1)
        db_session.execute(update(Product).where(Product.id == p.id).values(stock=MAX_STOCK - 1))
        db_session.commit()
        before = _entry_count(db_session, p.id)

        with pytest.raises(ValidationError) as excinfo:
            ledger_service.record_transaction(
                transaction_type="INCREASE", product_id=p.id,
                quantity=2, unit_price_cents=100,
            )
        assert excinfo.value.field == "quantity"
        assert _stock(db_session, p.id) == MAX_STOCK - 1
        assert _entry_count(db_session, p.id) == before

        ledger_service.record_transaction(
            transaction_type="INCREASE", product_id=p.id,
            quantity=1, unit_price_cents=100,
        )
        assert _stock(db_session, p.id) == MAX_STOCK


# =============================================================================
# APPEND-ONLY
# =============================================================================


class TestImmutability:

    def test_update_is_rejected(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=5)
        entry = db_session.query(LedgerEntry).filter_by(product_id=p.id).one()

        entry.quantity = 500
        with pytest.raises(ImmutableEntryError):
            db_session.commit()
        db_session.rollback()

        db_session.expire_all()
        assert db_session.query(LedgerEntry).filter_by(product_id=p.id).one().quantity == 5

    def test_delete_is_rejected(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=5)
        entry = db_session.query(LedgerEntry).filter_by(product_id=p.id).one()

        db_session.delete(entry)
        with pytest.raises(ImmutableEntryError):
            db_session.commit()
        db_session.rollback()

        assert _entry_count(db_session, p.id) == 1


# =============================================================================
# LISTING
# =============================================================================


class TestListing:

    def test_newest_first_with_totals(self, db_session, admin_user, store):
        p = _stocked_product(admin_user, stock=5)
        second = ledger_service.record_transaction(
            transaction_type="DECREASE", product_id=p.id, store_id=store.id,
            quantity=1, unit_price_cents=100,
        )

        result = ledger_service.list_transactions()

        assert result["total"] == 2
        assert result["page"] == 1
        assert result["page_size"] == 20
        assert result["total_pages"] == 1
        dates = [e.transaction_date for e in result["items"]]
        assert dates == sorted(dates, reverse=True)
        assert second.id in [e.id for e in result["items"]]

    def test_same_instant_ordered_by_id(self, db_session, admin_user, store, monkeypatch):
        instant = datetime(2026, 3, 18, 9, 0)
        monkeypatch.setattr(ledger_service, "utcnow", lambda: instant)

        p = _stocked_product(admin_user, stock=5)
        for _ in range(3):
            ledger_service.record_transaction(
                transaction_type="DECREASE", product_id=p.id, store_id=store.id,
                quantity=1, unit_price_cents=100,
            )

        items = ledger_service.list_transactions(product_id=p.id)["items"]
        assert len(items) == 4
        assert {e.transaction_date for e in items} == {instant}
        ids = [e.id for e in items]
        assert ids == sorted(ids)

    def test_filters(self, db_session, admin_user, store, other_store):
        p = _stocked_product(admin_user, stock=10)
        for target in (store, other_store, store):
            ledger_service.record_transaction(
                transaction_type="DECREASE", product_id=p.id, store_id=target.id,
                quantity=1, unit_price_cents=100,
            )

        by_store = ledger_service.list_transactions(store_id=store.id)
        assert by_store["total"] == 2
        assert all(e.store_id == store.id for e in by_store["items"])

        increases = ledger_service.list_transactions(transaction_type="increase")
        assert increases["total"] == 1

        by_product = ledger_service.list_transactions(product_id=p.id, limit=2, page=2)
        assert by_product["total"] == 4
        assert by_product["total_pages"] == 2
        assert len(by_product["items"]) == 2

    def test_out_of_range_limit_falls_back(self, db_session):
        result = ledger_service.list_transactions(limit=500, page=0)
        assert result["page_size"] == 20
        assert result["page"] == 1

    def test_bad_date_filter(self, db_session):
        with pytest.raises(ValidationError) as excinfo:
            ledger_service.list_transactions(start="not-a-date")
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_get_transaction(self, db_session, admin_user):
        p = _stocked_product(admin_user, stock=2)
        entry = db_session.query(LedgerEntry).filter_by(product_id=p.id).one()

        assert ledger_service.get_transaction(entry.id).id == entry.id
        with pytest.raises(NotFoundError):
            ledger_service.get_transaction(entry.id + 100)
