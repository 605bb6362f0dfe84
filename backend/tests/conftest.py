"""
Pytest fixtures for posledger backend tests.

Provides test database setup, tenant fixtures, fiscal printer and bridge
credentials, and the test client.
"""

import pytest
from posledger import create_app
from posledger.extensions import db
from posledger.models import (
    Organization, Customer, Supplier, Sale, SaleReturn, FiscalPrinterConfig,
)
from posledger.services import bridge_token_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'FISCAL_MAX_RETRIES': 3,
    'FISCAL_RETRY_BASE_SECONDS': 30,
    'FISCAL_STUCK_JOB_MINUTES': 5,
    'FISCAL_POLL_BATCH_SIZE': 5,
    'IDEMPOTENCY_WINDOW_SECONDS': 60,
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
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", timezone="Asia/Baku", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", timezone="Asia/Baku", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    customer = Customer(org_id=org_a.id, name="Customer A", phone="+994500000001")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier_a(db_session, org_a):
    supplier = Supplier(org_id=org_a.id, name="Supplier A", payment_terms_days=30)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def sale_a(db_session, org_a, customer_a):
    """Create a paid sale in Organization A."""
    sale = Sale(
        org_id=org_a.id,
        customer_id=customer_a.id,
        reference_number="S202501140001",
        total_cents=2500,
        paid_cents=2500,
    )
    db_session.add(sale)
    db_session.commit()
    return sale


@pytest.fixture(scope='function')
def sale_b(db_session, org_b):
    """Create a sale in Organization B."""
    sale = Sale(org_id=org_b.id, reference_number="S202501140001", total_cents=1000, paid_cents=1000)
    db_session.add(sale)
    db_session.commit()
    return sale


@pytest.fixture(scope='function')
def return_a(db_session, org_a, sale_a):
    """Create a return against sale_a."""
    sale_return = SaleReturn(
        org_id=org_a.id,
        sale_id=sale_a.id,
        reference_number="R202501140001",
        amount_cents=500,
    )
    db_session.add(sale_return)
    db_session.commit()
    return sale_return


@pytest.fixture(scope='function')
def printer_a(db_session, org_a):
    """Omnitech fiscal printer for Organization A."""
    config = FiscalPrinterConfig(
        org_id=org_a.id,
        provider="omnitech",
        endpoint_url="http://192.168.1.50:8989",
        username="cashier",
        password="secret",
        is_active=True,
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture(scope='function')
def bridge_a(db_session, org_a):
    """Bridge token for Organization A. Returns (record, plaintext)."""
    return bridge_token_service.create_token(org_a.id, "Front desk PC")


@pytest.fixture(scope='function')
def bridge_b(db_session, org_b):
    """Bridge token for Organization B. Returns (record, plaintext)."""
    return bridge_token_service.create_token(org_b.id, "Beta PC")


@pytest.fixture(scope='function')
def bridge_headers_a(bridge_a):
    """Authorization headers for Organization A's bridge."""
    return {'Authorization': f'Bearer {bridge_a[1]}'}


@pytest.fixture(scope='function')
def org_headers_a(org_a):
    """Tenant header the upstream gateway sets for Organization A."""
    return {'X-Org-Id': str(org_a.id)}
