"""
Pytest fixtures for stock ledger backend tests.

Provides test database setup, a product factory, and test client.
"""

from decimal import Decimal

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Product
from stockledger.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ENABLE_TAX': False,
        'TAX_RATE_PERCENT': '0',
        'LOCK_TIMEOUT_SECONDS': 2,
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
    """Factory inserting a product row directly (no opening adjustment)."""
    counter = {"n": 0}

    def _make(
        name=None,
        selling_price_cents=2000,
        cost_price_cents=1000,
        stock_quantity=50,
        min_stock_threshold=5,
        unit="piece",
        is_deleted=False,
    ):
        counter["n"] += 1
        now = utcnow()
        product = Product(
            name=name or f"Product {counter['n']}",
            unit=unit,
            selling_price_cents=selling_price_cents,
            cost_price_cents=cost_price_cents,
            stock_quantity=Decimal(str(stock_quantity)),
            min_stock_threshold=Decimal(str(min_stock_threshold)),
            is_deleted=is_deleted,
            deleted_at=now if is_deleted else None,
            created_at=now,
            updated_at=now,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product_a(make_product):
    """Product A: 50 on hand at cost 10.00, selling for 20.00."""
    return make_product(name="Product A", selling_price_cents=2000, cost_price_cents=1000, stock_quantity=50)


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read a product's committed stock quantity."""
    def _stock(product_id) -> Decimal:
        db_session.expire_all()
        return db_session.get(Product, product_id).stock_quantity

    return _stock
