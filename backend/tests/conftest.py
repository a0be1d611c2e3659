"""
Pytest fixtures for PharmaPOS backend tests.

Provides an in-memory database, per-test cleanup, record factories, and a
test client.
"""

import pytest

from pharmapos import create_app
from pharmapos.config import TestConfig
from pharmapos.extensions import db
from pharmapos.models import Customer
from pharmapos.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
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


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product through the catalog (opening stock recorded)."""
    counter = {"n": 0}

    def _make(name=None, stock=10, price_cents=1000, reorder_level=5, **extra):
        counter["n"] += 1
        payload = {
            "sku": extra.pop("sku", f"SKU-{counter['n']:04d}"),
            "name": name or f"Product {counter['n']}",
            "price_cents": price_cents,
            "cost_price_cents": extra.pop("cost_price_cents", price_cents // 2),
            "stock_quantity": stock,
            "reorder_level": reorder_level,
        }
        payload.update(extra)
        return catalog_service.create_product(payload)

    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    """A walk-up customer with a phone number on file."""
    c = Customer(name="Amina Yusuf", phone="555-0101", email="amina@example.com")
    db_session.add(c)
    db_session.commit()
    return c


def item(product, quantity, unit_price_cents=None, discount_cents=0) -> dict:
    """Order line payload for place_order()."""
    return {
        "product_id": product.id,
        "quantity": quantity,
        "unit_price_cents": product.price_cents if unit_price_cents is None else unit_price_cents,
        "discount_cents": discount_cents,
    }
