"""
Tests for YearEndService: the year-end closing entry and opening balances.

FY2026 activity used by most closing tests:
    outpatient revenue 500, discounts allowed 20, cost of drugs sold 120
    -> net income 360 moved to retained earnings.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    DateOutsideYearError,
    InvalidAccountError,
    PeriodAlreadyClosedError,
    PeriodNotFoundError,
    SequenceViolationError,
    UnbalancedEntryError,
    YearClosedError,
)
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.calendar import YearStatus
from ledger_kernel.models.journal import JournalEntry, SourceModule
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.calendar_service import CalendarService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_services.year_end import YearEndService


@pytest.fixture
def year_end(session, deterministic_clock):
    return YearEndService(session, clock=deterministic_clock)


@pytest.fixture
def calendar(session, deterministic_clock):
    return CalendarService(session, deterministic_clock)


@pytest.fixture
def fy2026(calendar, seeded_hospital):
    return calendar.get_open_periods(seeded_hospital)[0].year_id


@pytest.fixture
def post(session, deterministic_clock, seeded_hospital, test_actor_id):
    writer = JournalWriter(session, deterministic_clock)

    def _post(entry_date, debit_key, credit_key, amount):
        result = writer.post_entry(
            hospital_id=seeded_hospital,
            entry_date=entry_date,
            description="Activity",
            source_module=SourceModule.MANUAL,
            source_id=None,
            lines=[
                LineSpec.dr(debit_key, Decimal(amount)),
                LineSpec.cr(credit_key, Decimal(amount)),
            ],
            actor_id=test_actor_id,
        )
        session.commit()
        return result.entry

    return _post


@pytest.fixture
def close_periods(session, calendar, seeded_hospital, test_actor_id):
    """Close the first ``count`` open periods in date order."""

    def _close(count):
        for period in calendar.get_open_periods(seeded_hospital)[:count]:
            calendar.close_period(period.period_id, test_actor_id)
        session.commit()

    return _close


@pytest.fixture
def year_activity(post):
    post(date(2026, 1, 10), SystemAccountKey.RECEIVABLE_PATIENTS,
         SystemAccountKey.REVENUE_OUTPATIENT, "500.000")
    post(date(2026, 1, 10), SystemAccountKey.DISCOUNT_ALLOWED,
         SystemAccountKey.RECEIVABLE_PATIENTS, "20.000")
    post(date(2026, 2, 1), SystemAccountKey.COGS_DRUGS,
         SystemAccountKey.INVENTORY_DRUGS, "120.000")


def _balance(session, hospital_id, key):
    account = AccountRegistry(session).resolve(hospital_id, key)
    return LedgerSelector(session).account_balance(account.id)


def _closing_entry_count(session, hospital_id):
    return session.execute(
        select(func.count()).select_from(JournalEntry).where(
            JournalEntry.hospital_id == hospital_id,
            JournalEntry.source_module == SourceModule.CLOSING.value,
        )
    ).scalar_one()


class TestCloseFinancialYear:
    """Revenue and expense accounts are zeroed into retained earnings."""

    def test_net_income_moves_to_retained_earnings(
        self, session, year_end, year_activity, close_periods, fy2026, seeded_hospital,
        test_actor_id,
    ):
        close_periods(11)

        result = year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert result.total_revenue == Decimal("480.000")
        assert result.total_expense == Decimal("120.000")
        assert result.net_income == Decimal("360.000")
        assert result.entry.entry_date == date(2026, 12, 31)
        assert result.entry.source_module == SourceModule.CLOSING.value
        assert result.entry.source_id == str(fy2026)
        assert {(l.account_code, l.debit, l.credit) for l in result.entry.lines} == {
            ("400100", Decimal("500.000"), ZERO),
            ("400900", ZERO, Decimal("20.000")),
            ("500200", ZERO, Decimal("120.000")),
            ("300200", ZERO, Decimal("360.000")),
        }

        for key in (
            SystemAccountKey.REVENUE_OUTPATIENT,
            SystemAccountKey.DISCOUNT_ALLOWED,
            SystemAccountKey.COGS_DRUGS,
        ):
            assert _balance(session, seeded_hospital, key) == ZERO
        assert _balance(session, seeded_hospital, SystemAccountKey.RETAINED_EARNINGS) == Decimal(
            "360.000"
        )
        assert LedgerSelector(session).trial_balance(seeded_hospital).is_balanced

    def test_year_and_every_period_closed(
        self, session, year_end, year_activity, close_periods, calendar, fy2026,
        seeded_hospital, test_actor_id,
    ):
        close_periods(11)

        year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert calendar.get_year(fy2026).status == YearStatus.CLOSED.value
        assert not any(p.is_open for p in calendar.list_periods(fy2026))

    def test_net_loss_debits_retained_earnings(
        self, session, year_end, post, close_periods, fy2026, seeded_hospital, test_actor_id
    ):
        post(date(2026, 3, 5), SystemAccountKey.CASH_MAIN,
             SystemAccountKey.REVENUE_LAB, "100.000")
        post(date(2026, 3, 6), SystemAccountKey.COGS_SUPPLIES,
             SystemAccountKey.INVENTORY_SUPPLIES, "130.000")
        close_periods(11)

        result = year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert result.net_income == Decimal("-30.000")
        assert _balance(session, seeded_hospital, SystemAccountKey.RETAINED_EARNINGS) == Decimal(
            "-30.000"
        )

    def test_closed_final_period_is_reopened_for_the_entry(
        self, session, year_end, year_activity, close_periods, fy2026, seeded_hospital,
        test_actor_id,
    ):
        close_periods(12)

        result = year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert result.entry is not None
        assert result.entry.entry_date == date(2026, 12, 31)

    def test_open_earlier_period_blocks_close(
        self, session, year_end, year_activity, calendar, fy2026, seeded_hospital,
        test_actor_id,
    ):
        with pytest.raises(SequenceViolationError) as exc_info:
            year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert exc_info.value.blocking == "2026-01"
        assert calendar.get_year(fy2026).is_open
        assert _closing_entry_count(session, seeded_hospital) == 0

    def test_year_without_activity_closes_without_entry(
        self, session, year_end, close_periods, calendar, fy2026, seeded_hospital,
        test_actor_id,
    ):
        close_periods(11)

        result = year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert result.entry is None
        assert result.net_income == ZERO
        assert not calendar.get_year(fy2026).is_open

    def test_closed_year_rejected(
        self, session, year_end, close_periods, fy2026, seeded_hospital, test_actor_id
    ):
        close_periods(11)
        year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        with pytest.raises(PeriodAlreadyClosedError):
            year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

    def test_retired_revenue_account_is_closed_out(
        self, session, year_end, post, close_periods, fy2026, seeded_hospital, test_actor_id
    ):
        post(date(2026, 4, 2), SystemAccountKey.CASH_MAIN,
             SystemAccountKey.REVENUE_RADIOLOGY, "75.000")
        registry = AccountRegistry(session)
        radiology = registry.resolve(seeded_hospital, SystemAccountKey.REVENUE_RADIOLOGY)
        registry.deactivate_account(radiology.id, test_actor_id)
        session.commit()
        close_periods(11)

        year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        assert LedgerSelector(session).account_balance(radiology.id) == ZERO


class TestOpeningBalances:
    """Opening positions recorded as one OPENING entry per year."""

    def _lines(self, cash="1000.000", inventory="500.000", payables="300.000"):
        equity = Decimal(cash) + Decimal(inventory) - Decimal(payables)
        return [
            LineSpec.dr(SystemAccountKey.CASH_MAIN, Decimal(cash)),
            LineSpec.dr(SystemAccountKey.INVENTORY_DRUGS, Decimal(inventory)),
            LineSpec.cr(SystemAccountKey.PAYABLE_SUPPLIERS, Decimal(payables)),
            LineSpec.cr(SystemAccountKey.RETAINED_EARNINGS, equity),
        ]

    def test_opening_entry_dated_year_start(
        self, session, year_end, fy2026, seeded_hospital, test_actor_id
    ):
        entry = year_end.save_opening_balances(
            seeded_hospital, fy2026, self._lines(), test_actor_id
        )

        assert entry.entry_date == date(2026, 1, 1)
        assert entry.source_module == SourceModule.OPENING.value
        assert entry.source_id == str(fy2026)
        assert _balance(session, seeded_hospital, SystemAccountKey.CASH_MAIN) == Decimal(
            "1000.000"
        )
        assert _balance(session, seeded_hospital, SystemAccountKey.RETAINED_EARNINGS) == Decimal(
            "1200.000"
        )

    def test_saving_again_replaces_previous_entry(
        self, session, year_end, fy2026, seeded_hospital, test_actor_id
    ):
        first = year_end.save_opening_balances(
            seeded_hospital, fy2026, self._lines(), test_actor_id
        )
        second = year_end.save_opening_balances(
            seeded_hospital, fy2026, self._lines(cash="800.000"), test_actor_id
        )

        entries = JournalSelector(session).entries_for_source(
            seeded_hospital, SourceModule.OPENING, fy2026
        )
        assert len(entries) == 3
        assert [e.id for e in entries if e.reversal_of_id == first.id]
        assert second.purpose == f"opening-balances:{first.id}"
        assert _balance(session, seeded_hospital, SystemAccountKey.CASH_MAIN) == Decimal(
            "800.000"
        )
        assert _balance(session, seeded_hospital, SystemAccountKey.RETAINED_EARNINGS) == Decimal(
            "1000.000"
        )

    def test_income_statement_account_rejected(
        self, session, year_end, fy2026, seeded_hospital, test_actor_id
    ):
        lines = [
            LineSpec.dr(SystemAccountKey.CASH_MAIN, Decimal("50.000")),
            LineSpec.cr(SystemAccountKey.REVENUE_OUTPATIENT, Decimal("50.000")),
        ]

        with pytest.raises(InvalidAccountError):
            year_end.save_opening_balances(seeded_hospital, fy2026, lines, test_actor_id)
        assert _balance(session, seeded_hospital, SystemAccountKey.CASH_MAIN) == ZERO

    def test_unbalanced_opening_rejected(
        self, year_end, fy2026, seeded_hospital, test_actor_id
    ):
        lines = self._lines()[:3]

        with pytest.raises(UnbalancedEntryError):
            year_end.save_opening_balances(seeded_hospital, fy2026, lines, test_actor_id)

    def test_date_outside_year_rejected(
        self, year_end, fy2026, seeded_hospital, test_actor_id
    ):
        with pytest.raises(DateOutsideYearError):
            year_end.save_opening_balances(
                seeded_hospital, fy2026, self._lines(), test_actor_id,
                entry_date=date(2027, 1, 1),
            )

    def test_closed_year_rejected(
        self, year_end, close_periods, fy2026, seeded_hospital, test_actor_id
    ):
        close_periods(11)
        year_end.close_financial_year(seeded_hospital, fy2026, test_actor_id)

        with pytest.raises(YearClosedError):
            year_end.save_opening_balances(
                seeded_hospital, fy2026, self._lines(), test_actor_id
            )

    def test_other_hospital_year_not_found(self, year_end, fy2026, test_actor_id):
        with pytest.raises(PeriodNotFoundError):
            year_end.save_opening_balances(uuid4(), fy2026, self._lines(), test_actor_id)
