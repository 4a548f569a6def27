"""
Pytest fixtures for RetailPOS backend tests.

Provides the test app and database, user factories for every role and
onboarding status, auth header helpers and catalog factories.
"""

import re

import pytest
from retailpos import create_app
from retailpos.config import TestingConfig
from retailpos.extensions import db
from retailpos.models import Category, OutboundEmail, Product, User
from retailpos.money import to_decimal
from retailpos.services.auth_service import hash_password
from retailpos.services.session_service import create_session


TEST_PASSWORD = "Str0ng!Checkout9"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
    """Fresh database, cache and rate limiter for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.extensions["response_cache"].clear()
        app.extensions["rate_limiter"].reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """
    Factory for users in any role/status.

    Users default to active, verified and APPROVED STAFF with TEST_PASSWORD.
    """
    counter = {"n": 0}

    def _make(role="STAFF", status="APPROVED", is_active=True, email_verified=True, email=None):
        counter["n"] += 1
        user = User(
            email=email or f"{role.lower()}{counter['n']}@retailpos.test",
            first_name=role.title(),
            last_name=f"User{counter['n']}",
            password_hash=hash_password(TEST_PASSWORD),
            role=role,
            status=status,
            is_active=is_active,
            email_verified=email_verified,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


def headers_for(user) -> dict:
    _, token = create_session(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(db_session):
    """Callable returning Authorization headers for a user."""
    return headers_for


@pytest.fixture
def admin_user(make_user):
    return make_user(role="ADMIN", email="admin@retailpos.test")


@pytest.fixture
def manager_user(make_user):
    return make_user(role="MANAGER", email="manager@retailpos.test")


@pytest.fixture
def staff_user(make_user):
    return make_user(role="STAFF", email="staff@retailpos.test")


@pytest.fixture
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture
def manager_headers(manager_user):
    return headers_for(manager_user)


@pytest.fixture
def staff_headers(staff_user):
    return headers_for(staff_user)


@pytest.fixture
def make_product(db_session):
    """Factory for catalog products."""
    counter = {"n": 0}

    def _make(price="10.00", stock=10, sku=None, name=None, min_stock=0, category=None, is_archived=False):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            price=to_decimal(price),
            stock=stock,
            min_stock=min_stock,
            category_id=category.id if category else None,
            is_archived=is_archived,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def category(db_session):
    cat = Category(name="Beverages", description="Drinks")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture
def read_verification_code(db_session):
    """Read the code out of the most recent verification email, like a user would."""
    def _read(email: str) -> str:
        message = (
            db.session.query(OutboundEmail)
            .filter_by(to_address=email, template="VERIFY_EMAIL")
            .order_by(OutboundEmail.id.desc())
            .first()
        )
        assert message is not None, f"no verification email for {email}"
        match = re.search(r"verify your email address:\n\n(\S+)\n", message.body)
        assert match, message.body
        return match.group(1)

    return _read
