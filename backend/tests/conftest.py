"""
Pytest fixtures for tab engine tests.

Provides test database setup, two tenants with a small catalog, and a test client.
"""

import pytest
from comanda import create_app
from comanda.extensions import db
from comanda.models import Company, Product
from comanda.services import stock_service
from comanda.services.concurrency import checkout_locks
from comanda.services.tab_service import checkout_presence


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CHECKOUT_LOCK_TIMEOUT_SECONDS': 0.05,
        'POLL_INTERVAL_SECONDS': 0.01,
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

        # Process-local state must not leak between tests either
        checkout_locks.reset()
        checkout_presence.clear_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        checkout_presence.clear_all()


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Bar do Porto", code="PORTO", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Hotel Serra", code="SERRA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


def _product(db_session, company, sku, name, price_cents, *, barcode=None, requires_preparation=False):
    product = Product(
        company_id=company.id,
        sku=sku,
        barcode=barcode,
        name=name,
        price_cents=price_cents,
        requires_preparation=requires_preparation,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def burger(db_session, company_a):
    """Burger, $10.00, prepared in the kitchen."""
    return _product(db_session, company_a, "BURGER", "Burger", 1000,
                    barcode="7890000000011", requires_preparation=True)


@pytest.fixture(scope='function')
def soda(db_session, company_a):
    """Soda, $5.00, served straight from the fridge."""
    return _product(db_session, company_a, "SODA", "Soda", 500, barcode="7890000000028")


@pytest.fixture(scope='function')
def fries(db_session, company_a):
    """Fries, $4.00, prepared in the kitchen."""
    return _product(db_session, company_a, "FRIES", "Fries", 400, requires_preparation=True)


@pytest.fixture(scope='function')
def product_b(db_session, company_b):
    """Product belonging to Company B."""
    return _product(db_session, company_b, "WATER", "Water", 300)


@pytest.fixture(scope='function')
def stocked(db_session, company_a, burger, soda, fries):
    """Receive 50 units of every Company A product."""
    for product in (burger, soda, fries):
        stock_service.adjust_stock(company_a.id, product.id, 50, "Recebimento inicial")
    return {"burger": burger, "soda": soda, "fries": fries}


@pytest.fixture(scope='function')
def identity():
    """Helper building the identity headers forwarded by the session layer."""
    def _headers(company, user_id=7, user_name="Ana"):
        headers = {'X-Company-Id': str(company.id)}
        if user_id is not None:
            headers['X-User-Id'] = str(user_id)
        if user_name is not None:
            headers['X-User-Name'] = user_name
        return headers
    return _headers
