"""
Pytest fixtures for Stockbook backend tests.

Provides test database setup, users per role, a product factory and the
test client.
"""

import pytest

from stockbook import create_app
from stockbook.config import TestConfig
from stockbook.extensions import db
from stockbook.services import auth_service, products_service, session_service

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    # Keep bcrypt cheap in tests
    auth_service.BCRYPT_ROUNDS = 4

    app = create_app(TestConfig)

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
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(username: str, role: str):
    return auth_service.create_user(
        username,
        f"{username}@stockbook.test",
        TEST_PASSWORD,
        name=username.title(),
        role=role,
    )


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def editor_user(db_session):
    return _make_user("editor", "editor")


@pytest.fixture(scope='function')
def viewer_user(db_session):
    return _make_user("viewer", "user")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def editor_headers(editor_user):
    _, token = session_service.create_session(editor_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def viewer_headers(viewer_user):
    _, token = session_service.create_session(viewer_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory: make_product(sku="SKU-001", stock=10, selling_price_cents=15000, ...)

    Opening stock is booked as a ledger movement, like the API does.
    """
    counter = {"n": 0}

    def _make(sku=None, stock=0, name=None, base_price_cents=10000, selling_price_cents=15000,
              min_stock=0, unit="pcs", category=None):
        counter["n"] += 1
        patch = {
            "sku": sku or f"SKU-{counter['n']:03d}",
            "name": name or f"Product {counter['n']}",
            "unit": unit,
            "category": category,
            "base_price_cents": base_price_cents,
            "selling_price_cents": selling_price_cents,
            "min_stock": min_stock,
        }
        return products_service.create_product(patch=patch, initial_stock=stock)

    return _make


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
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
