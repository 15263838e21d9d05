"""
Pytest fixtures for familyhub backend tests.

Provides an in-memory database, test client, users, venues, and helpers to
put a venue into a given tariff state at a given time.
"""

from datetime import datetime

import pytest
from familyhub import create_app
from familyhub.extensions import db
from familyhub.models import ROLE_ADMIN, ROLE_VENDOR
from familyhub.services import entitlement_store, session_service, venue_service
from familyhub.services.auth_service import create_user
from familyhub.services.storage import atomic


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': 'test-jwt-secret-that-is-at-least-32-bytes-long',
        'CRON_SECRET': 'test-cron-secret',
        'SESSION_COOKIE_SECURE': False,
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
def make_user(db_session):
    """Factory: create a user with a fast bcrypt cost."""
    def _make(email: str, role: str = ROLE_VENDOR, password: str = TEST_PASSWORD, name: str | None = None):
        return create_user(email=email, password=password, name=name, role=role, bcrypt_rounds=4)
    return _make


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("admin@familyhub.test", role=ROLE_ADMIN, name="Admin")


@pytest.fixture(scope='function')
def vendor_user(make_user):
    return make_user("vendor@familyhub.test", role=ROLE_VENDOR, name="Vendor")


@pytest.fixture(scope='function')
def other_vendor(make_user):
    return make_user("other@familyhub.test", role=ROLE_VENDOR, name="Other Vendor")


@pytest.fixture(scope='function')
def make_venue(db_session):
    """Factory: create a FREE venue (entitlement + open FREE history entry)."""
    def _make(name: str = "Kids Club", owner=None, created_at: datetime = datetime(2026, 1, 1)):
        return venue_service.create_venue(
            name,
            owner_user_id=owner.id if owner is not None else None,
            now=created_at,
        )
    return _make


@pytest.fixture(scope='function')
def venue(make_venue, vendor_user):
    return make_venue("Kids Club", owner=vendor_user)


@pytest.fixture(scope='function')
def make_paid(db_session):
    """
    Factory: switch a venue to a paid tier as of `started_at`, writing the
    entitlement and the history transition the way a payment would.
    """
    def _make(
        venue_id: int,
        *,
        tier: str = "SUPER",
        expires_at: datetime,
        auto_renew: bool = False,
        grace_period_ends_at: datetime | None = None,
        price_cents: int | None = 69000,
        started_at: datetime = datetime(2026, 3, 1),
        monthly_feature_count: int = 0,
        feature_counter_reset_at: datetime | None = None,
    ):
        with atomic():
            row = entitlement_store.get_required(venue_id)
            entitlement_store.start_period(
                venue_id,
                at=started_at,
                tier=tier,
                price_cents=price_cents,
                auto_renewed=False,
            )
            entitlement_store.update(
                row,
                tier=tier,
                expires_at=expires_at,
                auto_renew=auto_renew,
                grace_period_ends_at=grace_period_ends_at,
                price_cents=price_cents,
                monthly_feature_count=monthly_feature_count,
                feature_counter_reset_at=feature_counter_reset_at,
            )
        return row
    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def vendor_headers(vendor_user):
    issued = session_service.create_session(vendor_user.id)
    return auth_headers(issued.access_token)


@pytest.fixture(scope='function')
def other_vendor_headers(other_vendor):
    issued = session_service.create_session(other_vendor.id)
    return auth_headers(issued.access_token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    issued = session_service.create_session(admin_user.id)
    return auth_headers(issued.access_token)


@pytest.fixture(scope='function')
def cron_headers(app):
    return auth_headers(app.config['CRON_SECRET'])
