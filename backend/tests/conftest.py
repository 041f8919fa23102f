"""
Pytest fixtures for parkcore backend tests.

Provides the application on an in-memory database, a per-test table wipe,
the test client and a small parking domain (sector, street, operator with
assignment, pricing profile, open shift).
"""

from datetime import timedelta

import pytest

from parkcore import create_app
from parkcore.extensions import db
from parkcore.models import (
    Operator,
    OperatorAssignment,
    PricingProfile,
    PricingRule,
    Sector,
    Street,
)
from parkcore.services import parking_session_service, shift_service
from parkcore.services.quota_service import UnlimitedQuotaChecker
from parkcore.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'QUOTA_CHECKER': UnlimitedQuotaChecker(),
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
def sector(db_session):
    sector = Sector(name="Centro")
    db_session.add(sector)
    db_session.commit()
    return sector


@pytest.fixture(scope='function')
def street(db_session, sector):
    street = Street(sector_id=sector.id, name="Prat")
    db_session.add(street)
    db_session.commit()
    return street


@pytest.fixture(scope='function')
def operator(db_session, sector):
    """ACTIVE operator assigned to the whole sector since yesterday."""
    operator = Operator(name="Ana Rojas", rut="11111111-1", status="ACTIVE")
    db_session.add(operator)
    db_session.flush()
    db_session.add(OperatorAssignment(
        operator_id=operator.id,
        sector_id=sector.id,
        valid_from=utcnow() - timedelta(days=1),
    ))
    db_session.commit()
    return operator


@pytest.fixture(scope='function')
def cashier(db_session):
    """Second operator, not assigned to any sector."""
    cashier = Operator(name="Luis Soto", rut="22222222-2", status="ACTIVE")
    db_session.add(cashier)
    db_session.commit()
    return cashier


@pytest.fixture(scope='function')
def profile(db_session, sector):
    """
    Profile active since yesterday with one rule:
    0-60 min at 50/min, minimum 500.
    """
    profile = PricingProfile(
        sector_id=sector.id,
        name="Standard",
        is_active=True,
        active_from=utcnow() - timedelta(days=1),
    )
    db_session.add(profile)
    db_session.flush()
    db_session.add(PricingRule(
        profile_id=profile.id,
        name="First hour",
        min_duration_minutes=0,
        max_duration_minutes=60,
        price_per_min=50,
        min_amount=500,
        priority=0,
        is_active=True,
    ))
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def shift(db_session, operator):
    return shift_service.open_shift(operator_id=operator.id, opening_float=10000)


@pytest.fixture(scope='function')
def open_session(db_session, sector, operator, profile):
    """ACTIVE session for plate ABCD12."""
    return parking_session_service.open_session(
        plate="ABCD12",
        sector_id=sector.id,
        operator_id=operator.id,
    ).session


def minutes_after(session, minutes: int, seconds: int = 0):
    """Checkout time `minutes` (and `seconds`) after the session started."""
    return session.started_at + timedelta(minutes=minutes, seconds=seconds)


def checked_out(session, minutes: int, operator_id=None):
    """Check a session out after `minutes`; returns the CheckoutResult."""
    return parking_session_service.checkout(
        session.id,
        ended_at=minutes_after(session, minutes),
        operator_out_id=operator_id,
    )


def operator_headers(operator) -> dict:
    """Helper to create the operator identity header."""
    return {'X-Operator-Id': str(operator.id)}
