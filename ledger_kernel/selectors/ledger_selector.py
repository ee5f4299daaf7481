"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Account ledgers with opening/running/closing balances, and
    the trial balance.  The ledger is a derived view over journal lines;
    nothing here writes, so results are reproducible from the same entry
    set and safe to cache.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Sign convention: debit-normal accounts accumulate debit - credit,
      credit-normal accounts accumulate credit - debit.
    - closing_balance equals the last running balance, or the opening
      balance when the range holds no lines.
    - Trial balance debit and credit totals are equal for any journal
      that satisfies the per-entry balance invariant.

Failure modes:
    - AccountNotFoundError when the ledger account does not exist.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import enum_value
from ledger_kernel.exceptions import AccountNotFoundError, InvalidRangeError
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerLine:
    """One journal line as it appears on an account ledger."""

    entry_id: UUID
    entry_number: str
    entry_date: date
    line_seq: int
    description: str
    source_module: str
    source_id: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class LedgerReport:
    account_id: UUID
    account_code: str
    account_name: str
    normal_balance: str
    date_from: date
    date_to: date
    opening_balance: Decimal
    lines: tuple[LedgerLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    closing_balance: Decimal


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single account in the trial balance."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    normal_balance: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Balance on the account's normal side."""
        if self.normal_balance == NormalBalance.DEBIT.value:
            return self.debit_total - self.credit_total
        return self.credit_total - self.debit_total


@dataclass(frozen=True)
class TrialBalance:
    hospital_id: UUID
    as_of_date: date | None
    rows: tuple[TrialBalanceRow, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((r.debit_total for r in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((r.credit_total for r in self.rows), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Ledger and trial balance queries.

    Contract:
        All figures derive from JournalLine rows at query time.  Lines are
        ordered by entry date, then entry number, then line number.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get_ledger(self, account_id: UUID, date_from: date, date_to: date) -> LedgerReport:
        """
        Ledger for one account over [date_from, date_to] (inclusive).

        Raises:
            AccountNotFoundError: unknown account.
            InvalidRangeError: date_to before date_from.
        """
        if date_to < date_from:
            raise InvalidRangeError(str(date_from), str(date_to))
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        debit_normal = account.is_debit_normal

        opening_debit, opening_credit = self._sums(
            account_id, JournalEntry.entry_date < date_from
        )
        opening = (
            opening_debit - opening_credit if debit_normal else opening_credit - opening_debit
        )

        rows = self.session.execute(
            select(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.entry_date >= date_from,
                JournalEntry.entry_date <= date_to,
            )
            .order_by(JournalEntry.entry_date, JournalEntry.sequence, JournalLine.line_seq)
        ).all()

        running = opening
        total_debit = ZERO
        total_credit = ZERO
        lines: list[LedgerLine] = []
        for line, entry in rows:
            running += line.signed_amount(debit_normal)
            total_debit += line.debit
            total_credit += line.credit
            lines.append(
                LedgerLine(
                    entry_id=entry.id,
                    entry_number=entry.entry_number,
                    entry_date=entry.entry_date,
                    line_seq=line.line_seq,
                    description=line.description or entry.description,
                    source_module=enum_value(entry.source_module),
                    source_id=entry.source_id,
                    debit=line.debit,
                    credit=line.credit,
                    running_balance=running,
                )
            )

        return LedgerReport(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            normal_balance=enum_value(account.normal_balance),
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening,
            lines=tuple(lines),
            total_debit=total_debit,
            total_credit=total_credit,
            closing_balance=running,
        )

    def account_balance(self, account_id: UUID, as_of_date: date | None = None) -> Decimal:
        """Normal-side balance of one account, optionally as of a date."""
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        conditions = [JournalEntry.entry_date <= as_of_date] if as_of_date else []
        debit, credit = self._sums(account_id, *conditions)
        return debit - credit if account.is_debit_normal else credit - debit

    def trial_balance(self, hospital_id: UUID, as_of_date: date | None = None) -> TrialBalance:
        """One row per account that has posted lines, ordered by code."""
        stmt = (
            select(
                Account,
                func.sum(JournalLine.debit),
                func.sum(JournalLine.credit),
            )
            .join(JournalLine, JournalLine.account_id == Account.id)
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(JournalEntry.hospital_id == hospital_id)
            .group_by(Account.id)
            .order_by(Account.code)
        )
        if as_of_date is not None:
            stmt = stmt.where(JournalEntry.entry_date <= as_of_date)

        rows = tuple(
            TrialBalanceRow(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                account_type=enum_value(account.account_type),
                normal_balance=enum_value(account.normal_balance),
                debit_total=debit or ZERO,
                credit_total=credit or ZERO,
            )
            for account, debit, credit in self.session.execute(stmt).all()
        )
        return TrialBalance(hospital_id=hospital_id, as_of_date=as_of_date, rows=rows)

    def activity_by_account(
        self,
        hospital_id: UUID,
        date_from: date,
        date_to: date,
        account_types: Iterable[AccountType] | None = None,
    ) -> tuple[TrialBalanceRow, ...]:
        """
        Debit and credit totals per account for lines dated in
        [date_from, date_to], optionally limited to some account types.
        Used for year-end closing, where only the year's own activity counts.
        """
        if date_to < date_from:
            raise InvalidRangeError(str(date_from), str(date_to))
        stmt = (
            select(
                Account,
                func.sum(JournalLine.debit),
                func.sum(JournalLine.credit),
            )
            .join(JournalLine, JournalLine.account_id == Account.id)
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(
                JournalEntry.hospital_id == hospital_id,
                JournalEntry.entry_date >= date_from,
                JournalEntry.entry_date <= date_to,
            )
            .group_by(Account.id)
            .order_by(Account.code)
        )
        if account_types is not None:
            stmt = stmt.where(
                Account.account_type.in_([AccountType(t).value for t in account_types])
            )
        return tuple(
            TrialBalanceRow(
                account_id=account.id,
                account_code=account.code,
                account_name=account.name,
                account_type=enum_value(account.account_type),
                normal_balance=enum_value(account.normal_balance),
                debit_total=debit or ZERO,
                credit_total=credit or ZERO,
            )
            for account, debit, credit in self.session.execute(stmt).all()
        )

    def _sums(self, account_id: UUID, *conditions) -> tuple[Decimal, Decimal]:
        debit, credit = self.session.execute(
            select(func.sum(JournalLine.debit), func.sum(JournalLine.credit))
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(JournalLine.account_id == account_id, *conditions)
        ).one()
        return debit or ZERO, credit or ZERO
