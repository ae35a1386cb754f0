"""
Pytest fixtures for storedesk backend tests.

Provides test database setup, a test client and small catalog / invoice
factories.
"""

from datetime import datetime

import pytest
from storedesk import create_app
from storedesk.config import TestConfig
from storedesk.extensions import db
from storedesk.models import Category, Color, Product, Size
from storedesk.services import invoice_service
from storedesk.services.settings_service import load_store_config


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
def store_config(db_session):
    """Default store settings (18% tax, low-stock threshold 10)."""
    return load_store_config()


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Shirts")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def size_m(db_session):
    size = Size(name="M", sort_order=3)
    db_session.add(size)
    db_session.commit()
    return size


@pytest.fixture(scope='function')
def color_black(db_session):
    color = Color(name="Black", hex_code="#000000", sort_order=1)
    db_session.add(color)
    db_session.commit()
    return color


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name=..., price_cents=..., cost_cents=..., quantity_in_stock=...)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "name": f"Product {counter['n']}",
            "sku": f"SKU-{counter['n']:03d}",
            "price_cents": 1000,
            "cost_cents": 600,
            "quantity_in_stock": 50,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_invoice(db_session, store_config):
    """
    Factory: make_invoice([(product, qty), ...], payment_status="done", created_at=None, **payload).

    Returns the committed Invoice.
    """
    def _make(lines, payment_status="done", created_at: datetime | None = None, **payload):
        payload = {
            "items": [{"product_id": p.id, "quantity": qty} for p, qty in lines],
            "payment_status": payment_status,
            **payload,
        }
        return invoice_service.create_invoice(payload, store_config, created_at=created_at)

    return _make
