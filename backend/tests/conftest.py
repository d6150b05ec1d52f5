"""
Pytest fixtures for the beautypos backend tests.

Provides an in-memory application, a per-test clean database and a small
catalog (category, products, discount) to check out against.
"""

from datetime import timedelta

import pytest
from beautypos import create_app
from beautypos.extensions import db
from beautypos.models import Category, Discount, Product
from beautypos.services.transaction_service import CheckoutLine, CheckoutRequest
from beautypos.time_utils import business_date


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Skincare")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product_a(db_session, category):
    """Serum at 100.00 with 10 units on hand."""
    product = Product(
        sku="SKN-001",
        barcode="4006381333931",
        name="Hydrating Face Serum",
        category_id=category.id,
        price_cents=10000,
        cost_cents=4000,
        stock_quantity=10,
        min_stock_level=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, category):
    """Lipstick at 25.00 with 3 units on hand."""
    product = Product(
        sku="MKP-001",
        name="Matte Liquid Lipstick",
        category_id=category.id,
        price_cents=2500,
        cost_cents=800,
        stock_quantity=3,
        min_stock_level=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def discount_10pct(db_session):
    """10% off, minimum 100.00, capped at 500.00."""
    today = business_date()
    discount = Discount(
        name="Welcome 10%",
        type="percentage",
        value=1000,
        minimum_amount_cents=10000,
        maximum_discount_cents=50000,
        valid_from=today - timedelta(days=1),
        valid_until=today + timedelta(days=30),
        used_count=0,
    )
    db_session.add(discount)
    db_session.commit()
    return discount


def make_request(lines, *, payment_method="cash", amount_paid_cents=100_000, discount_id=None, **extra):
    """Build a CheckoutRequest from (product, quantity, unit_price_cents) tuples."""
    return CheckoutRequest(
        lines=[
            CheckoutLine(product_id=p.id if hasattr(p, "id") else p, quantity=q, unit_price_cents=price)
            for p, q, price in lines
        ],
        payment_method=payment_method,
        amount_paid_cents=amount_paid_cents,
        discount_id=discount_id,
        **extra,
    )


def reload(model, pk):
    """Fetch a fresh copy of a row, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(model, pk)
