"""
Pytest fixtures for fastbill backend tests.

Every test gets a fresh app: an in-memory database, in-memory local
storage and its own terminal registry, so till state never leaks between
tests.
"""

import pytest

from fastbill import create_app
from fastbill.extensions import db
from fastbill.models import User, Product, Customer
from fastbill.services.auth_service import hash_password
from fastbill.decorators import TERMINALS_EXTENSION, CACHE_EXTENSION
from fastbill.time_utils import utcnow

PASSWORD = "Passw0rd!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOCAL_STORAGE_PATH': ':memory:',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def registry(app):
    return app.extensions[TERMINALS_EXTENSION]


@pytest.fixture(scope='function')
def cache(app):
    return app.extensions[CACHE_EXTENSION]


def _make_user(db_session, username: str) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
        subscription_tier="FREE",
        subscription_status="trial",
        trial_started_at=utcnow(),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session):
    """First tenant."""
    return _make_user(db_session, "shop_a")


@pytest.fixture(scope='function')
def user_b(db_session):
    """Second tenant."""
    return _make_user(db_session, "shop_b")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(tenant_id, name, stock_qty=10, ...)."""
    def _make(tenant_id, name="Notebook", *, stock_qty=10, min_stock=2,
              retail=100, wholesale=80, mrp=120, purchase=60, archived=False, image=None):
        product = Product(
            tenant_id=tenant_id,
            name=name,
            brand="Acme",
            category="Stationery",
            purchase_price_cents=purchase,
            mrp_cents=mrp,
            retail_price_cents=retail,
            wholesale_price_cents=wholesale,
            stock_qty=stock_qty,
            min_stock=min_stock,
            archived=archived,
            product_image=image,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def customer_a(db_session, user_a):
    customer = Customer(tenant_id=user_a.id, name="Ravi Traders", phone="9876543210")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def terminal_a(registry, user_a):
    """Open till for user A (what signing in does)."""
    return registry.open(user_a.id)


def product_payload(**overrides) -> dict:
    payload = {
        "name": "Gel Pen",
        "purchase_price_cents": 500,
        "mrp_cents": 1000,
        "retail_price_cents": 900,
        "wholesale_price_cents": 700,
        "stock_qty": 20,
        "min_stock": 5,
    }
    payload.update(overrides)
    return payload


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
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
