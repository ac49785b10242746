"""
Pytest fixtures for PartsPOS backend tests.

Provides test database setup, staff users per role, and the test client.
"""

from decimal import Decimal

import pytest

from partspos import create_app
from partspos.extensions import db
from partspos.models import Customer, Product, User
from partspos.models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_WAREHOUSE
from partspos.services import cash_service, settings_service
from partspos.services.auth_service import hash_password

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'DEFAULT_EXCHANGE_RATE': '70',
    })

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

        cash_service.ensure_cash_balance()
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(session, username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@partspos.test",
        name=username.title(),
        role=role,
        password_hash=hash_password(PASSWORD),
        is_active=True,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager_user(db_session):
    return _make_user(db_session, "manager", ROLE_MANAGER)


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user(db_session, "cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def warehouse_user(db_session):
    return _make_user(db_session, "warehouse", ROLE_WAREHOUSE)


@pytest.fixture(scope='function')
def accountant_user(db_session):
    return _make_user(db_session, "accountant", ROLE_ACCOUNTANT)


@pytest.fixture(scope='function')
def rate(db_session):
    """Pin the exchange rate to 70 AFN/USD."""
    settings_service.set_exchange_rate(Decimal("70"))
    return Decimal("70")


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(
        sku="BRK-001",
        name="Brake Pad Set",
        brand="Bosch",
        category="Brakes",
        cost_price_cents=1500,
        sale_price_cents=2500,
        quantity_on_hand=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session):
    product = Product(
        sku="FLT-002",
        name="Oil Filter",
        brand="Mann",
        category="Filters",
        cost_price_cents=300,
        sale_price_cents=600,
        quantity_on_hand=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(display_id="KB40213", name="Karim Baheer", phone="0700000001")
    db_session.add(customer)
    db_session.commit()
    return customer


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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username))


@pytest.fixture(scope='function')
def warehouse_headers(client, warehouse_user):
    return auth_headers(get_auth_token(client, warehouse_user.username))


def assert_ledger_consistent():
    """Shop balance equals the cash journal; each customer cache equals its open entries."""
    from partspos.models import CreditEntry
    from partspos.models.credit import CREDIT_STATUS_SETTLED

    db.session.expire_all()
    cash = cash_service.verify_cash_ledger()
    assert cash["consistent"], cash

    for customer in db.session.query(Customer).all():
        expected = sum(
            e.remaining_afn_cents
            for e in db.session.query(CreditEntry).filter(
                CreditEntry.customer_id == customer.id,
                CreditEntry.status != CREDIT_STATUS_SETTLED,
            )
        )
        assert customer.outstanding_balance_afn_cents == expected, customer.display_id
