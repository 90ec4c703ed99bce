"""Shared pytest fixtures for CNSTRCT API tests."""

import os

# Configuration is read at import time; these must be set before cnstrct is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-supabase-jwt-secret"
os.environ["QBO_CLIENT_ID"] = "prod-client-id"
os.environ["QBO_CLIENT_SECRET"] = "prod-client-secret"
os.environ["QBO_SANDBOX_CLIENT_ID"] = "sandbox-client-id"
os.environ["QBO_SANDBOX_CLIENT_SECRET"] = "sandbox-client-secret"
os.environ["QBO_TOKEN_TRANSPORT"] = "direct"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import date, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402

from cnstrct import models, models_quickbooks  # noqa: E402, F401
from cnstrct.database import Base, SessionLocal, engine  # noqa: E402
from cnstrct.domain.integrations.quickbooks.config import resolve_qbo_config  # noqa: E402
from cnstrct.domain.integrations.quickbooks.retry import RetryPolicy  # noqa: E402
from cnstrct.models import Expense, Invoice, Project, User  # noqa: E402
from cnstrct.shared.clock import utcnow  # noqa: E402


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime = None):
        self.now = now or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


async def no_sleep(_delay):
    return None


def token_payload(access="access-1", refresh="refresh-1", expires_in=3600, refresh_expires_in=8726400):
    """Token endpoint body as Intuit returns it"""
    return {
        "access_token": access,
        "refresh_token": refresh,
        "token_type": "bearer",
        "expires_in": expires_in,
        "x_refresh_token_expires_in": refresh_expires_in,
    }


@pytest.fixture
def db():
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    user = User(supabase_uid="supabase-user-1", email="gc@example.com", full_name="Gina Contractor")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(supabase_uid="supabase-user-2", email="other@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def qbo_config():
    """Sandbox configuration for the local frontend."""
    return resolve_qbo_config("localhost", transport="direct", token_proxy_url="")


@pytest.fixture
def fast_retry():
    """Retry policy that never actually waits."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, sleep=no_sleep)


@pytest.fixture
def project(db, user):
    project = Project(
        user_id=user.id,
        name="Kitchen Remodel",
        client_name="Harper O'Neil",
        client_email="harper@example.com",
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def expense(db, project):
    expense = Expense(
        project_id=project.id,
        name="Cabinet install",
        payee="Acme Cabinets",
        amount=100.0,
        amount_due=100.0,
        payment_status="due",
        expense_date=date(2024, 3, 1),
        expense_number="EXP-42",
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return expense


@pytest.fixture
def invoice(db, project):
    invoice = Invoice(
        project_id=project.id,
        invoice_number="INV-1001",
        amount=2500.0,
        amount_due=2500.0,
        payment_status="due",
        invoice_date=date(2024, 3, 1),
        due_date=date(2024, 3, 31),
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice
