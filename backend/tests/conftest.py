"""
Pytest fixtures for shop ledger backend tests.

Each test gets its own application bound to a fresh in-memory SQLite
database. Seed helpers commit in their own app context and return ids, so
tests read ledger results back through the gateway instead of a session
that may hold stale rows.
"""

from datetime import date

import pytest
from shopledger import create_app
from shopledger.extensions import db, database
from shopledger.models import Customer, InventoryItem, Supplier


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'DB_RETRY_BACKOFF_SECONDS': 0,
    'DB_HEALTH_CHECK_INTERVAL': 0,
    'BCRYPT_ROUNDS': 4,
}


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app(dict(TEST_CONFIG))

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def ctx(app):
    """Active app context for calling services directly."""
    with app.app_context():
        yield app
        db.session.rollback()


@pytest.fixture(scope='function')
def make_item(app):
    """Insert an inventory item; returns its id."""
    def _make(**overrides):
        data = {
            "sku": "SKU-A",
            "name": "Widget",
            "category": "Tools",
            "quantity": 10,
            "cost_price": 100,
            "price": 150,
            "reorder_level": 2,
            "supplier": "TechParts Inc",
            "last_restock": date(2026, 1, 1),
        }
        data.update(overrides)
        with app.app_context():
            item = InventoryItem(**data)
            db.session.add(item)
            db.session.commit()
            return item.id
    return _make


@pytest.fixture(scope='function')
def make_customer(app):
    """Insert a registered customer; returns its id."""
    def _make(**overrides):
        data = {
            "name": "Alice Johnson",
            "email": "alice@email.com",
            "phone": "+1234567892",
            "address": "123 Main St, City",
        }
        data.update(overrides)
        with app.app_context():
            customer = Customer(**data)
            db.session.add(customer)
            db.session.commit()
            return customer.id
    return _make


@pytest.fixture(scope='function')
def make_supplier(app):
    def _make(**overrides):
        data = {
            "company": "Global Supplies Co",
            "contact": "Jane Smith",
            "email": "jane@globalsupplies.com",
            "phone": "+1234567891",
            "terms": "Net 60",
            "categories": "Office Supplies",
            "products": "Paper",
        }
        data.update(overrides)
        with app.app_context():
            supplier = Supplier(**data)
            db.session.add(supplier)
            db.session.commit()
            return supplier.id
    return _make


@pytest.fixture(scope='function')
def fetch(app):
    """Read one row fresh from the database: fetch("sales", sale_id)."""
    def _fetch(table: str, row_id: int):
        with app.app_context():
            return database.get(f"SELECT * FROM {table} WHERE id = ?", [row_id])
    return _fetch


def _sale_payload(item_id: int, quantity: int = 3, price: float = 150.0, **overrides) -> dict:
    payload = {
        "date": "2026-01-15",
        "customerId": 0,
        "customerName": "Walk-in Customer",
        "sellerId": 1,
        "sellerName": "Dana",
        "items": [{"itemId": item_id, "quantity": quantity, "price": price}],
        "paymentMethod": "cash",
        "status": "completed",
    }
    payload.update(overrides)
    return payload


def _return_payload(invoice_number: str, invoice_id: int, amount: float = 150.0, **overrides) -> dict:
    payload = {
        "invoiceNumber": invoice_number,
        "invoiceId": invoice_id,
        "date": "2026-01-20",
        "customerName": "Walk-in Customer",
        "customerId": 0,
        "amount": amount,
        "reason": "Damaged on arrival",
        "status": "pending",
        "items": [{"sku": "SKU-A", "name": "Widget", "category": "Tools", "quantity": 1, "price": amount}],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def sale_body():
    """Builder for a one-line POST /api/sales body."""
    return _sale_payload


@pytest.fixture
def return_body():
    """Builder for a POST /api/returns body returning one unit of SKU-A."""
    return _return_payload
