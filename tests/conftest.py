"""Pytest configuration and shared fixtures for all tests."""

import os
from datetime import datetime
from decimal import Decimal

# Keep the process-wide database in memory and logs quiet
os.environ.setdefault("REFERRAL_DATABASE_URL", "sqlite://")
os.environ.setdefault("REFERRAL_LOG_LEVEL", "WARNING")
os.environ.setdefault("REFERRAL_ENV", "test")

import pytest

from referral_ledger.integrations.memory import InMemoryCourseCatalog, InMemoryEnrollmentGateway
from referral_ledger.ledger.service import ReferralService
from referral_ledger.storage.db import Database

COURSE_PRICES = {
    101: Decimal("200.00"),
    102: Decimal("49.99"),
    103: Decimal("1000.00"),
}


@pytest.fixture
def database():
    """Fresh in-memory database with all ledger tables."""
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.engine.dispose()


@pytest.fixture
def courses():
    return InMemoryCourseCatalog(COURSE_PRICES)


@pytest.fixture
def enrollments():
    return InMemoryEnrollmentGateway()


@pytest.fixture
def service(database, courses, enrollments):
    """Service without default milestones, so tests control reward issuance."""
    return ReferralService(
        database=database,
        courses=courses,
        enrollments=enrollments,
        default_milestones=(),
    )


@pytest.fixture
def now():
    return datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture
def referrer(service):
    """Referral account for user 1 at the default 10% rate."""
    return service.create_account(1)
