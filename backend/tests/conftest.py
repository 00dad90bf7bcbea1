"""
Pytest fixtures for stockpos backend tests.

Provides test database setup, actors, product factories and test client.
"""

import itertools

import pytest
from stockpos import create_app
from stockpos.actor import ActorContext, ROLE_ADMIN, ROLE_CASHIER
from stockpos.extensions import db
from stockpos.models import Product, ProductVariant
from stockpos.services import products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_BACKOFF_SECONDS': 0,
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
def admin():
    return ActorContext(user_id=1, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier():
    return ActorContext(user_id=2, role=ROLE_CASHIER)


@pytest.fixture(scope='function')
def make_product(db_session, admin):
    """
    Factory for products with a provisioned stock line.

    quantity is booked as initial stock (an 'in' movement) when > 0.
    """
    counter = itertools.count(1)

    def _make(quantity=0, *, min_stock_level=0, price_cents=1000, name=None, is_active=True, barcode=None):
        n = next(counter)
        created = products_service.create_product(
            {
                "sku": f"SKU-{n:04d}",
                "barcode": barcode,
                "name": name or f"Product {n}",
                "price_cents": price_cents,
                "min_stock_level": min_stock_level,
            },
            admin,
            initial_stock=quantity,
        )
        product = db_session.get(Product, created["id"])
        if not is_active:
            product.is_active = False
            db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_variant(db_session, admin):
    """Factory for a product variant with its own stock line at 0."""
    def _make(product, value="XL", name="Size"):
        created = products_service.create_variant(
            product.id,
            {"variant_name": name, "variant_value": value},
            admin,
        )
        return db_session.get(ProductVariant, created["id"])

    return _make


def actor_headers(user_id: int = 1, role: str = ROLE_ADMIN) -> dict:
    """Helper to create the actor headers forwarded by the auth gateway."""
    return {'X-Actor-Id': str(user_id), 'X-Actor-Role': role}
