"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, users with sessions, and test client.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import User
from stockledger.services import products_service, session_service, store_service
from stockledger.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'LEDGER_RETRY_BACKOFF': 0.0,
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema. Core deletes skip the ORM
        # guards that keep ledger entries append-only.
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username: str, role: str) -> User:
    user = User(
        username=username,
        full_name=username.title(),
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    """ADMIN user (may mutate products and stores)."""
    return _make_user(db_session, "admin", "ADMIN")


@pytest.fixture(scope='function')
def staff_user(db_session):
    """STAFF user (ledger and reports only)."""
    return _make_user(db_session, "clerk", "STAFF")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    _, token = session_service.create_session(staff_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def store(db_session, admin_user):
    return store_service.create_store(code="ST-1", name="Store One", actor_id=admin_user.id)


@pytest.fixture(scope='function')
def other_store(db_session, admin_user):
    return store_service.create_store(code="ST-2", name="Store Two", actor_id=admin_user.id)


@pytest.fixture(scope='function')
def product(db_session, admin_user):
    """Product with no opening stock (cost 100, price 250)."""
    return products_service.create_product(
        sku="WIDGET-1",
        name="Widget",
        price_cents=250,
        cost_cents=100,
        actor_id=admin_user.id,
    )


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
