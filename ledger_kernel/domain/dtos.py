"""
DTOs -- immutable data structures crossing the kernel service boundary.

Responsibility:
    Defines what callers hand to the Posting Engine (LineSpec) and what the
    kernel hands back (EntryInfo, PeriodInfo, AccountInfo, PostingResult).
    Services never return ORM entities to callers outside the kernel.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are
    boundary converters invoked only from the service and selector layers.

Failure modes:
    - ValueError on LineSpec with a negative or float amount, or with both
      sides set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.db.types import ZERO

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.account import SystemAccountKey
    from ledger_kernel.models.calendar import FinancialPeriod as PeriodModel
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel


def enum_value(value):
    """Plain value of a str-Enum column, whether freshly set or loaded."""
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    ``account`` is either a concrete account id or a SystemAccountKey that
    the registry resolves per hospital at posting time.
    """

    account: UUID | SystemAccountKey
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        for side in (self.debit, self.credit):
            if not isinstance(side, Decimal):
                raise ValueError(f"Line amounts must be Decimal, got {type(side).__name__}")
            if side < 0:
                raise ValueError(f"Line amounts cannot be negative: {side}")

    @classmethod
    def dr(cls, account, amount: Decimal, description: str | None = None) -> LineSpec:
        return cls(account=account, debit=amount, description=description)

    @classmethod
    def cr(cls, account, amount: Decimal, description: str | None = None) -> LineSpec:
        return cls(account=account, credit=amount, description=description)

    @property
    def amount(self) -> Decimal:
        return self.debit if self.debit else self.credit

    def swapped(self) -> LineSpec:
        """The same line with debit and credit exchanged (for reversals)."""
        return LineSpec(
            account=self.account,
            debit=self.credit,
            credit=self.debit,
            description=self.description,
        )


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    hospital_id: UUID
    code: str
    name: str
    account_type: str
    normal_balance: str
    is_active: bool

    @classmethod
    def from_model(cls, account: AccountModel) -> AccountInfo:
        return cls(
            id=account.id,
            hospital_id=account.hospital_id,
            code=account.code,
            name=account.name,
            account_type=enum_value(account.account_type),
            normal_balance=enum_value(account.normal_balance),
            is_active=account.is_active,
        )


@dataclass(frozen=True)
class PeriodInfo:
    """The {year, period} pair resolved for a posting date."""

    year_id: UUID
    year_code: str
    period_id: UUID
    period_code: str
    period_index: int
    start_date: date
    end_date: date
    is_open: bool

    @classmethod
    def from_model(cls, period: PeriodModel) -> PeriodInfo:
        return cls(
            year_id=period.year_id,
            year_code=period.year.code,
            period_id=period.id,
            period_code=period.code,
            period_index=period.period_index,
            start_date=period.start_date,
            end_date=period.end_date,
            is_open=period.is_open,
        )


@dataclass(frozen=True)
class EntryLineInfo:
    line_seq: int
    account_id: UUID
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str | None


@dataclass(frozen=True)
class EntryInfo:
    """Read-only view of a persisted journal entry."""

    id: UUID
    hospital_id: UUID
    entry_number: str
    entry_date: date
    description: str
    source_module: str
    source_id: str | None
    purpose: str
    period_id: UUID
    reversal_of_id: UUID | None
    lines: tuple[EntryLineInfo, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @classmethod
    def from_model(cls, entry: JournalEntryModel) -> EntryInfo:
        return cls(
            id=entry.id,
            hospital_id=entry.hospital_id,
            entry_number=entry.entry_number,
            entry_date=entry.entry_date,
            description=entry.description,
            source_module=enum_value(entry.source_module),
            source_id=entry.source_id,
            purpose=entry.purpose,
            period_id=entry.period_id,
            reversal_of_id=entry.reversal_of_id,
            lines=tuple(
                EntryLineInfo(
                    line_seq=line.line_seq,
                    account_id=line.account_id,
                    account_code=line.account.code,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
                for line in entry.lines
            ),
        )


class PostingStatus(str, Enum):
    WRITTEN = "written"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class PostingResult:
    """
    Outcome of JournalWriter.post_entry().

    ALREADY_EXISTS is an idempotent success: the entry is the one created
    by the earlier call for the same source and purpose.
    """

    status: PostingStatus
    entry: EntryInfo

    @classmethod
    def written(cls, entry: EntryInfo) -> PostingResult:
        return cls(status=PostingStatus.WRITTEN, entry=entry)

    @classmethod
    def already_exists(cls, entry: EntryInfo) -> PostingResult:
        return cls(status=PostingStatus.ALREADY_EXISTS, entry=entry)

    @property
    def created(self) -> bool:
        return self.status == PostingStatus.WRITTEN


@dataclass(frozen=True)
class AccountDefinition:
    """A chart-of-accounts row to seed, optionally bound to a system key."""

    code: str
    name: str
    account_type: str
    normal_balance: str | None = None
    system_key: str | None = None
