"""
Pytest fixtures for the hospital ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (every table, immutability
  guards registered)
- Sessions, a deterministic clock and a fixed actor
- A hospital with the default chart seeded and financial year 2026 open
- Service factories for the module layer
- captured_logs for asserting on structured log output

Environment Variables:
- DATABASE_URL: PostgreSQL URL used by tests marked ``postgres``.  Those
  tests are skipped when it is not set.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config import get_settings
from ledger_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_modules.billing.models import ChargeRequest, ServiceType
from ledger_modules.billing.service import BillingService
from ledger_modules.cashier.service import CashierService
from ledger_modules.claims.service import ClaimSettlementService
from ledger_modules.coverage.service import CoverageService
from ledger_modules.inventory.service import InventoryPostingService
from ledger_modules.purchasing.service import PurchasingService
from ledger_services.setup import HospitalSetupService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL (DATABASE_URL)"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL"):
        return
    skip_pg = pytest.mark.skip(reason="DATABASE_URL not set")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, billing_service):
            billing_service.issue_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """A private in-memory database with every table created."""
    db_engine = init_engine_from_url("sqlite://")
    create_tables()
    yield db_engine
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    db_session = session_factory()
    yield db_session
    db_session.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """2026-01-15 09:00 UTC unless a test moves it."""
    return DeterministicClock()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def hospital_id() -> UUID:
    return uuid4()


@pytest.fixture
def seeded_hospital(session, hospital_id, test_actor_id, deterministic_clock) -> UUID:
    """Default chart seeded and FY2026 open with twelve monthly periods."""
    setup = HospitalSetupService(session, clock=deterministic_clock)
    setup.seed_default_chart(hospital_id, test_actor_id)
    setup.open_financial_year(
        hospital_id, "FY2026", date(2026, 1, 1), date(2026, 12, 31), test_actor_id
    )
    return hospital_id


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def billing_service(session, deterministic_clock):
    return BillingService(session, clock=deterministic_clock)


@pytest.fixture
def claims_service(session, deterministic_clock):
    return ClaimSettlementService(session, clock=deterministic_clock)


@pytest.fixture
def cashier_service(session, deterministic_clock):
    return CashierService(session, clock=deterministic_clock)


@pytest.fixture
def coverage_service(session):
    return CoverageService(session)


@pytest.fixture
def inventory_service(session, deterministic_clock):
    return InventoryPostingService(session, clock=deterministic_clock)


@pytest.fixture
def purchasing_service(session, deterministic_clock):
    return PurchasingService(session, clock=deterministic_clock)


@pytest.fixture
def insured_plan(seeded_hospital, billing_service, coverage_service, test_actor_id):
    """An insurer with a plan whose patient copay is 20%."""
    provider = billing_service.create_insurance_provider(
        seeded_hospital, "National Health Mutual", test_actor_id
    )
    plan = coverage_service.create_plan(
        seeded_hospital,
        "Standard 80/20",
        Decimal("20"),
        test_actor_id,
        insurance_provider_id=provider.id,
    )
    return provider, UUID(plan.id)


@pytest.fixture
def make_invoice(seeded_hospital, billing_service, test_actor_id):
    """
    Create (and by default issue) an invoice.

    Usage::

        invoice = make_invoice(Decimal("100.000"), plan_id=plan_id)
    """

    def _make(
        amount: Decimal,
        service_type: ServiceType = ServiceType.CONSULTATION,
        plan_id: UUID | None = None,
        patient_id: UUID | None = None,
        invoice_date: date | None = None,
        issue: bool = True,
        discount_amount: Decimal = Decimal("0.000"),
    ):
        invoice = billing_service.create_invoice(
            hospital_id=seeded_hospital,
            patient_id=patient_id or uuid4(),
            charges=[ChargeRequest(service_type, amount, f"{service_type.value} charge")],
            actor_id=test_actor_id,
            invoice_date=invoice_date,
            coverage_plan_id=plan_id,
            discount_amount=discount_amount,
        )
        if issue:
            invoice = billing_service.issue_invoice(invoice.id, test_actor_id)
        return invoice

    return _make


# =============================================================================
# Helpers
# =============================================================================


def count_journal_rows(session: Session) -> tuple[int, int]:
    """(entries, lines) currently persisted."""
    entries = session.execute(select(func.count()).select_from(JournalEntry)).scalar_one()
    lines = session.execute(select(func.count()).select_from(JournalLine)).scalar_one()
    return entries, lines


@pytest.fixture
def journal_row_counts(session):
    return lambda: count_journal_rows(session)
