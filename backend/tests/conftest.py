"""
Pytest fixtures for Tillbook backend tests.

Provides the application (in-memory SQLite, synchronous journal posting),
a clean database per test with the default chart of accounts, and helpers
for seeding shifts and products.
"""

import pytest

from tillbook import create_app
from tillbook.config import TestConfig
from tillbook.extensions import db
from tillbook.services import account_service, inventory_service, posting_dispatcher, shift_service


CASHIER = "cashier-1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        posting_dispatcher.shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database for each test; accounts are re-seeded."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    account_service.seed_default_accounts()

    yield db.session

    db.session.rollback()
    app.config["JOURNAL_POSTING_MODE"] = "sync"


@pytest.fixture(scope='function')
def shift(db_session):
    """Active shift for CASHIER with a 1000-cent float."""
    return shift_service.start_shift(CASHIER, 1000)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for products with stock."""
    counter = {"n": 0}

    def _make(price_cents=350, cost_cents=200, stock_quantity=10, name=None):
        counter["n"] += 1
        return inventory_service.create_product(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price_cents=price_cents,
            cost_cents=cost_cents,
            stock_quantity=stock_quantity,
        )

    return _make


def actor_headers(actor_id: str = CASHIER) -> dict:
    """Helper to create identity headers."""
    return {'X-Actor-Id': actor_id}
