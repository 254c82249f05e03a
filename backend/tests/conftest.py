"""
Pytest fixtures for stockledger backend tests.

Provides test database setup, two isolated tenants with items and
counterparties, a coordinator wired to the app's event dispatcher, and a
test client.
"""

import uuid

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.enums import TenantStatus
from stockledger.models import Customer, Item, Manufacturer, Supplier, Tenant
from stockledger.money import Money, Quantity
from stockledger.services.coordinator import TransactionCoordinator
from stockledger.services.repository import SqlAlchemyLedgerRepository


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF_SECONDS': 0,
        'LOG_LEVEL': 'WARNING',
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def repository(db_session):
    return SqlAlchemyLedgerRepository(db_session)


@pytest.fixture(scope='function')
def coordinator(app, repository):
    """Coordinator on the test session; retries do not sleep."""
    return TransactionCoordinator(
        repository,
        app.extensions['ledger_events'],
        retry_attempts=3,
        backoff_seconds=0,
        deadline_seconds=10,
        sleep=lambda seconds: None,
    )


@pytest.fixture(scope='function')
def events(app):
    """Collect every event published during the test."""
    received = []

    def handler(event):
        received.append(event)

    dispatcher = app.extensions['ledger_events']
    dispatcher.subscribe(handler)
    yield received
    dispatcher.unsubscribe(handler)


@pytest.fixture
def new_key():
    return lambda: uuid.uuid4().hex


def _make_tenant(db_session, name):
    tenant = Tenant(name=name, status=TenantStatus.ACTIVE.value)
    db_session.add(tenant)
    db_session.commit()
    return tenant


def _make_item(db_session, tenant, name, quantity=10, cost="6.00", price="10.00", **extra):
    manufacturer = db_session.query(Manufacturer).filter_by(tenant_id=tenant.id).first()
    if manufacturer is None:
        manufacturer = Manufacturer(tenant_id=tenant.id, name=f"{tenant.name} Foods")
        db_session.add(manufacturer)
        db_session.flush()
    item = Item(
        tenant_id=tenant.id,
        manufacturer_id=manufacturer.id,
        name=name,
        quantity=Quantity(quantity),
        cost_price=Money(cost),
        selling_price=Money(price),
        **extra,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def tenant(db_session):
    """Tenant A (first tenant)."""
    return _make_tenant(db_session, "Tenant A - Corner Shop")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second tenant)."""
    return _make_tenant(db_session, "Tenant B - Market Stall")


@pytest.fixture(scope='function')
def item(db_session, tenant):
    """10 units on hand, cost 6.00, sells at 10.00."""
    return _make_item(db_session, tenant, "Rice 5kg")


@pytest.fixture(scope='function')
def other_item(db_session, tenant):
    return _make_item(db_session, tenant, "Cooking Oil 1L", quantity=2, cost="3.00", price="5.00")


@pytest.fixture(scope='function')
def item_b(db_session, tenant_b):
    return _make_item(db_session, tenant_b, "Sugar 1kg")


@pytest.fixture(scope='function')
def customer(db_session, tenant):
    customer = Customer(tenant_id=tenant.id, name="Ama Mensah", phone="0241234567")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, tenant_b):
    customer = Customer(tenant_id=tenant_b.id, name="Kofi Boateng")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session, tenant):
    supplier = Supplier(tenant_id=tenant.id, name="Wholesale Depot")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_item(db_session):
    def _factory(tenant, name="Extra Item", **kwargs):
        return _make_item(db_session, tenant, name, **kwargs)
    return _factory
