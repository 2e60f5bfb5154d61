"""
Pytest fixtures for FabOps backend tests.

Provides test database setup, model factories, and test client.
"""

import pytest
from fabops import create_app
from fabops.extensions import db
from fabops.models import JobCard
from fabops.services import inventory_service, order_service, purchase_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVENTORY_RETRY_BACKOFF': 0,
        'ALLOW_NEGATIVE_INVENTORY': True,
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
def make_material(db_session):
    """Factory: inventory item with opening stock."""
    def _make(name="Canvas 600D", quantity=100.0, unit="meter", conversion_rate=1.0, purchase_rate=None):
        return inventory_service.create_inventory_item(
            material_name=name,
            unit=unit,
            quantity=quantity,
            conversion_rate=conversion_rate,
            purchase_rate=purchase_rate,
        )
    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: draft order; components are dicts as accepted by create_order."""
    counter = {"n": 0}

    def _make(components=None, quantity=10, order_number=None):
        counter["n"] += 1
        return order_service.create_order(
            order_number=order_number or f"ORD-{counter['n']:04d}",
            quantity=quantity,
            components=components or [],
            company_name="Test Bags",
        )
    return _make


@pytest.fixture(scope='function')
def make_job_card(db_session):
    """Factory: job card row only; no consumption is recorded."""
    counter = {"n": 0}

    def _make(order, job_number=None):
        counter["n"] += 1
        job_card = JobCard(job_number=job_number or f"JC-{counter['n']:04d}", order_id=order.id)
        db_session.add(job_card)
        db_session.commit()
        return job_card
    return _make


@pytest.fixture(scope='function')
def make_purchase(db_session):
    """Factory: pending purchase."""
    counter = {"n": 0}

    def _make(items, transport_charge=0.0, purchase_number=None):
        counter["n"] += 1
        return purchase_service.create_purchase(
            purchase_number=purchase_number or f"PO-{counter['n']:04d}",
            supplier_name="Test Mills",
            transport_charge=transport_charge,
            items=items,
        )
    return _make
