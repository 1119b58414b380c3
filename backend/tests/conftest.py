"""
Pytest fixtures for stockroom backend tests.

Provides the test database, the Flask test client, admin/staff users with
bearer headers, and a sample product.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import User, ROLE_ADMIN, ROLE_STAFF
from stockroom.services import products_service, session_service
from stockroom.services.auth_service import hash_password

TEST_PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'STOCK_RETRY_BACKOFF_BASE': 0,
    'BCRYPT_ROUNDS': 4,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test (schema is kept)."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


def _make_user(username: str, role: str) -> User:
    user = User(
        username=username,
        email=f"{username}@stockroom.test",
        name=username.title(),
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def _bearer(user: User) -> dict:
    _, token = session_service.create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user("admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def staff_user(db_session):
    return _make_user("cashier", ROLE_STAFF)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _bearer(admin_user)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return _bearer(staff_user)


@pytest.fixture(scope='function')
def product(db_session, admin_user):
    """10 on hand, minimum 2, sells at 1.00."""
    return products_service.create_product(
        patch={
            "sku": "SKU-001",
            "name": "Widget",
            "quantity": 10,
            "minimum_stock": 2,
            "cost_price_cents": 60,
            "selling_price_cents": 100,
        },
        actor_id=admin_user.id,
    )


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """Factory for extra products."""
    counter = {"n": 0}

    def _make(quantity=5, price_cents=250, minimum_stock=0, **extra):
        counter["n"] += 1
        patch = {
            "sku": f"SKU-X{counter['n']:03d}",
            "name": f"Extra {counter['n']}",
            "quantity": quantity,
            "minimum_stock": minimum_stock,
            "selling_price_cents": price_cents,
        }
        patch.update(extra)
        return products_service.create_product(patch=patch, actor_id=admin_user.id)

    return _make
