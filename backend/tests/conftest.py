"""
Pytest fixtures for grocer backend tests.

Provides an in-memory application, a per-test clean database, a test client,
and small factories for catalog products and orders.
"""

from decimal import Decimal

import pytest

from grocer import create_app
from grocer.extensions import db
from grocer.models import Order, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATION_BACKEND': 'disabled',
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
def make_product(db_session):
    """Factory: persist a product and return it."""
    def _make(name="Jasmine Rice 5kg", price="289.50", stock=20, **fields):
        product = Product(name=name, price=Decimal(str(price)), stock=stock, **fields)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: persist an order header (no items) and return it."""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        values = {
            "order_code": f"ORD9{counter['n']:05d}",
            "name": "Juan Dela Cruz",
            "total_price": Decimal("100.00"),
            "discount": Decimal("0.00"),
            "net_total": Decimal("100.00"),
            "device_id": "device-a",
        }
        values.update(fields)
        order = Order(**values)
        db_session.add(order)
        db_session.commit()
        return order
    return _make
