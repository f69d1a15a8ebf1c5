"""
Pytest fixtures for stockkeeper backend tests.

Provides an in-memory application, a per-test table wipe, and catalog
fixtures (operator, customer, product factory).
"""

import pytest

from stockkeeper import create_app
from stockkeeper.extensions import db
from stockkeeper.models import Customer, InventoryMovement, Product, Transaction, TransactionItem, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_BACKOFF_SECONDS': 0,
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
def operator(db_session):
    """Operator of record for sales."""
    user = User(username="cashier", email="cashier@example.com", role="employee")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Ada Buyer", email="ada@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for products seeded with an opening stock quantity."""
    counter = {"n": 0}

    def _make(stock: int = 100, name: str | None = None, price_cents: int = 1000) -> Product:
        counter["n"] += 1
        product = Product(
            name=name or f"Product {counter['n']}",
            sku=f"SKU-{counter['n']:04d}",
            price_cents=price_cents,
            stock_quantity=stock,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


def stock_of(product_id: int) -> int:
    """Fresh read of a product's stock, bypassing the identity map."""
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_quantity


def row_counts() -> dict:
    return {
        "transactions": db.session.query(Transaction).count(),
        "transaction_items": db.session.query(TransactionItem).count(),
        "inventory_movements": db.session.query(InventoryMovement).count(),
    }
