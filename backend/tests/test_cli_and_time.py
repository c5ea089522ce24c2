"""
CLI commands and time helpers.
"""

from datetime import datetime, timezone

from sqlalchemy import update

from stockledger.models import Product, User
from stockledger.services import products_service
from stockledger.time_utils import normalize_datetime, parse_iso_datetime, to_display, to_utc_z

from conftest import TEST_PASSWORD


class TestTimeUtils:

    def test_offset_input_is_stored_as_utc(self):
        assert parse_iso_datetime("2026-03-18T12:00:00+02:00") == datetime(2026, 3, 18, 10, 0)
        assert parse_iso_datetime("2026-03-18T12:00:00Z") == datetime(2026, 3, 18, 12, 0)
        assert parse_iso_datetime("  ") is None

    def test_aware_datetime_normalized(self):
        aware = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)
        assert normalize_datetime(aware) == datetime(2026, 3, 18, 12, 0)

    def test_serialization(self):
        dt = datetime(2026, 3, 18, 23, 30, 15, 999)
        assert to_utc_z(dt) == "2026-03-18T23:30:15Z"
        assert to_display(dt, 60) == "2026-03-19T00:30:15+01:00"
        assert to_display(dt) == "2026-03-18T23:30:15+00:00"


class TestCli:

    def test_init_creates_admin_once(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--admin-password", TEST_PASSWORD])
        assert first.exit_code == 0, first.output
        assert "Created user: admin" in first.output

        second = runner.invoke(args=["system", "init", "--admin-password", TEST_PASSWORD])
        assert second.exit_code == 0
        assert "already exists" in second.output

        assert db_session.query(User).filter_by(username="admin").one().role == "ADMIN"

    def test_users_create_rejects_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--username", "weak", "--password", "weak", "--role", "STAFF",
        ])
        assert result.exit_code != 0
        assert db_session.query(User).filter_by(username="weak").first() is None

    def test_reconcile(self, app, db_session):
        p = products_service.create_product(sku="R1", name="R1", initial_stock=3)
        runner = app.test_cli_runner()

        ok = runner.invoke(args=["ledger", "reconcile"])
        assert ok.exit_code == 0
        assert "1 product(s) in sync" in ok.output

        db_session.execute(update(Product).where(Product.id == p.id).values(stock=1))
        db_session.commit()

        drift = runner.invoke(args=["ledger", "reconcile"])
        assert drift.exit_code != 0
        assert "DRIFT" in drift.output
