"""
ledger_services.year_end -- financial year closing and opening balances.

Thin glue layer that:
1. Closes a financial year: posts one CLOSING entry dated the year end that
   zeroes every revenue and expense account and moves the net result to
   RETAINED_EARNINGS, then closes the final period and the year
2. Records a year's opening balances as one OPENING entry on balance sheet
   accounts; saving again reverses the previous opening entry and posts the
   replacement

Ledger balances are cumulative across years, so asset, liability and equity
accounts carry into the next year without any entry.  Opening balances are
for positions that predate the ledger (a hospital migrating onto it).

Both operations own the transaction: commit on success, roll back and
re-raise on failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryInfo, LineSpec
from ledger_kernel.exceptions import (
    DateOutsideYearError,
    InvalidAccountError,
    PeriodAlreadyClosedError,
    PeriodNotFoundError,
    SequenceViolationError,
    YearClosedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import AccountType, SystemAccountKey
from ledger_kernel.models.calendar import FinancialYear
from ledger_kernel.models.journal import JournalEntry, SourceModule
from ledger_kernel.selectors.ledger_selector import LedgerSelector, TrialBalanceRow
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.calendar_service import CalendarService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.reversal_service import ReversalService

logger = get_logger("services.year_end")

YEAR_CLOSE_PURPOSE = "year-close"
OPENING_BALANCES_PURPOSE = "opening-balances"

BALANCE_SHEET_TYPES = (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)
INCOME_STATEMENT_TYPES = (AccountType.REVENUE, AccountType.EXPENSE)


@dataclass(frozen=True)
class YearCloseResult:
    """Outcome of closing a financial year."""

    year_id: UUID
    year_code: str
    entry: EntryInfo | None
    total_revenue: Decimal
    total_expense: Decimal

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expense


class YearEndService:
    """
    Year-end closing and opening balances.

    Contract:
        close_financial_year() leaves revenue and expense accounts at zero
        for the year and the year CLOSED, or changes nothing.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._registry = AccountRegistry(session)
        self._calendar = CalendarService(session, self._clock)
        self._writer = JournalWriter(
            session, self._clock, registry=self._registry, calendar=self._calendar
        )
        self._reversals = ReversalService(session, self._clock, self._writer)
        self._ledger = LedgerSelector(session)

    # =========================================================================
    # Closing
    # =========================================================================

    def close_financial_year(
        self, hospital_id: UUID, year_id: UUID, actor_id: UUID
    ) -> YearCloseResult:
        """
        Post the closing entry and close the year.

        Every period before the final one must already be closed.  The
        closing entry lands in the final period, so a closed final period
        is reopened for it and closed again.  A year with no revenue or
        expense activity closes without an entry.

        Raises:
            PeriodNotFoundError: unknown year, or one of another hospital.
            PeriodAlreadyClosedError: the year is already closed.
            SequenceViolationError: an earlier period, or an earlier year,
                is still open.
            ConfigurationError: RETAINED_EARNINGS is not mapped.
        """
        with LogContext.bind(hospital_id=hospital_id, actor_id=actor_id):
            try:
                year = self._get_year(hospital_id, year_id)
                if not year.is_open:
                    raise PeriodAlreadyClosedError(year.code)

                periods = self._calendar.list_periods(year_id)
                if not periods:
                    raise PeriodNotFoundError(f"periods of {year.code}")
                final = periods[-1]
                for period in periods[:-1]:
                    if period.is_open:
                        raise SequenceViolationError(
                            target=year.code,
                            blocking=period.period_code,
                            reason="every period before the final one must be closed",
                        )
                if not final.is_open:
                    self._calendar.reopen_period(final.period_id, actor_id)

                activity = self._ledger.activity_by_account(
                    hospital_id, year.start_date, year.end_date, INCOME_STATEMENT_TYPES
                )
                lines, total_revenue, total_expense = self._closing_lines(activity)

                entry = None
                if lines:
                    result = self._writer.post_entry(
                        hospital_id=hospital_id,
                        entry_date=year.end_date,
                        description=f"Year-end close {year.code}",
                        source_module=SourceModule.CLOSING,
                        source_id=year.id,
                        lines=lines,
                        actor_id=actor_id,
                        purpose=YEAR_CLOSE_PURPOSE,
                    )
                    entry = result.entry

                self._calendar.close_period(final.period_id, actor_id)
                self._calendar.close_year(year.id, actor_id)
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            outcome = YearCloseResult(
                year_id=year.id,
                year_code=year.code,
                entry=entry,
                total_revenue=total_revenue,
                total_expense=total_expense,
            )
            logger.info(
                "year_end_closed",
                extra={
                    "year_code": year.code,
                    "entry_number": entry.entry_number if entry else None,
                    "total_revenue": str(total_revenue),
                    "total_expense": str(total_expense),
                    "net_income": str(outcome.net_income),
                },
            )
            return outcome

    @staticmethod
    def _closing_lines(
        activity: Sequence[TrialBalanceRow],
    ) -> tuple[list[LineSpec], Decimal, Decimal]:
        """
        One line per revenue/expense account with a non-zero balance, on
        the side that zeroes it, plus the net to retained earnings.
        """
        lines: list[LineSpec] = []
        total_revenue = ZERO
        total_expense = ZERO
        for row in activity:
            net_debit = row.debit_total - row.credit_total
            if net_debit == 0:
                continue
            if row.account_type == AccountType.REVENUE.value:
                total_revenue -= net_debit
            else:
                total_expense += net_debit
            description = f"Close {row.account_code} {row.account_name}"
            if net_debit > 0:
                lines.append(LineSpec.cr(row.account_id, net_debit, description))
            else:
                lines.append(LineSpec.dr(row.account_id, -net_debit, description))

        net_income = total_revenue - total_expense
        if net_income > 0:
            lines.append(LineSpec.cr(SystemAccountKey.RETAINED_EARNINGS, net_income, "Net income"))
        elif net_income < 0:
            lines.append(LineSpec.dr(SystemAccountKey.RETAINED_EARNINGS, -net_income, "Net loss"))
        return lines, total_revenue, total_expense

    # =========================================================================
    # Opening balances
    # =========================================================================

    def save_opening_balances(
        self,
        hospital_id: UUID,
        year_id: UUID,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        entry_date: date | None = None,
    ) -> EntryInfo:
        """
        Record the year's opening balances as one OPENING entry.

        Lines must name asset, liability or equity accounts and balance.
        If the year already has an opening entry it is reversed (dated as
        itself) and the new one replaces it.

        Raises:
            PeriodNotFoundError: unknown year, or one of another hospital.
            YearClosedError: the year is closed.
            DateOutsideYearError: entry_date outside the year.
            InvalidAccountError: a line names an income statement account.
            UnbalancedEntryError, InvalidEntryLinesError: from the posting.
        """
        with LogContext.bind(hospital_id=hospital_id, actor_id=actor_id):
            try:
                year = self._get_year(hospital_id, year_id)
                if not year.is_open:
                    raise YearClosedError(year.code)
                entry_date = entry_date or year.start_date
                if not year.contains_date(entry_date):
                    raise DateOutsideYearError(year.code, str(entry_date))
                for line in lines:
                    self._require_balance_sheet_account(hospital_id, line)

                purpose = OPENING_BALANCES_PURPOSE
                previous = self._current_opening_entry(hospital_id, year.id)
                if previous is not None:
                    self._reversals.reverse_entry(
                        previous.id,
                        "Opening balances replaced",
                        actor_id,
                        reversal_date=previous.entry_date,
                    )
                    purpose = f"{OPENING_BALANCES_PURPOSE}:{previous.id}"

                result = self._writer.post_entry(
                    hospital_id=hospital_id,
                    entry_date=entry_date,
                    description=f"Opening balances {year.code}",
                    source_module=SourceModule.OPENING,
                    source_id=year.id,
                    lines=lines,
                    actor_id=actor_id,
                    purpose=purpose,
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "opening_balances_saved",
                extra={
                    "year_code": year.code,
                    "entry_number": result.entry.entry_number,
                    "replaced_entry_id": str(previous.id) if previous else None,
                    "line_count": len(lines),
                },
            )
            return result.entry

    def _require_balance_sheet_account(self, hospital_id: UUID, line: LineSpec) -> None:
        if isinstance(line.account, UUID):
            account = self._registry.get_account(line.account)
        else:
            account = self._registry.resolve(hospital_id, SystemAccountKey(line.account))
        if AccountType(account.account_type) not in BALANCE_SHEET_TYPES:
            raise InvalidAccountError(
                str(account.id), "opening balances take balance sheet accounts only"
            )

    def _current_opening_entry(self, hospital_id: UUID, year_id: UUID) -> JournalEntry | None:
        """The latest OPENING entry of the year that has not been reversed."""
        reversal = aliased(JournalEntry)
        return self._session.execute(
            select(JournalEntry)
            .outerjoin(reversal, reversal.reversal_of_id == JournalEntry.id)
            .where(
                JournalEntry.hospital_id == hospital_id,
                JournalEntry.source_module == SourceModule.OPENING.value,
                JournalEntry.source_id == str(year_id),
                JournalEntry.reversal_of_id.is_(None),
                reversal.id.is_(None),
            )
            .order_by(JournalEntry.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _get_year(self, hospital_id: UUID, year_id: UUID) -> FinancialYear:
        year = self._calendar.get_year(year_id)
        if year.hospital_id != hospital_id:
            raise PeriodNotFoundError(str(year_id))
        return year
