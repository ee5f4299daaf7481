"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines -- the
    append-only record of every financial fact in the ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.  JournalWriter and ReversalService are the sole
    writers.

Invariants enforced:
    - sum(debit) == sum(credit) per entry (validated by JournalWriter before
      any row is inserted; entry and lines are flushed together).
    - Each line carries exactly one non-zero, non-negative side
      (ck_journal_line_one_side).
    - idempotency_key is unique: one entry per (hospital, source module,
      source id, purpose).
    - reversal_of_id is unique: an entry is reversed at most once.
    - Entries and lines are immutable after insert (db/immutability.py).

Audit relevance:
    source_module + source_id trace every entry back to the domain object
    that caused it; entry_number gives a gap-free per-hospital order.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO
from ledger_kernel.models.account import Account


class SourceModule(str, Enum):
    """Closed set of modules that may originate journal entries."""

    BILLING = "BILLING"
    CASHIER = "CASHIER"
    INVENTORY = "INVENTORY"
    MANUAL = "MANUAL"
    OPENING = "OPENING"
    CLOSING = "CLOSING"
    PAYROLL = "PAYROLL"


class JournalEntry(TrackedBase):
    """
    A balanced, immutable set of journal lines recorded on one date.

    Guarantees:
        - Lines are loaded eagerly (selectin) and ordered by line_seq.
        - total_debits == total_credits for every persisted entry.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_journal_idempotency_key"),
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        UniqueConstraint("hospital_id", "entry_number", name="uq_journal_entry_number"),
        Index("idx_journal_hospital_date", "hospital_id", "entry_date"),
        Index("idx_journal_source", "hospital_id", "source_module", "source_id"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # "JE-000042"
    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    source_module: Mapped[SourceModule] = mapped_column(String(20), nullable=False)

    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    purpose: Mapped[str] = mapped_column(String(100), nullable=False)

    idempotency_key: Mapped[str | None] = mapped_column(String(400), nullable=True)

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financial_periods.id"),
        nullable=False,
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        order_by="JournalLine.line_seq",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} {self.entry_date} {self.source_module}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class JournalLine(TrackedBase):
    """One debit or credit against one account."""

    __tablename__ = "journal_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_journal_line_one_side",
        ),
        UniqueConstraint("entry_id", "line_seq", name="uq_journal_line_seq"),
        Index("idx_journal_line_account", "account_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    account: Mapped[Account] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<JournalLine {self.line_seq} Dr {self.debit} Cr {self.credit}>"

    def signed_amount(self, debit_normal: bool) -> Decimal:
        """Effect of this line on an account with the given normal side."""
        if debit_normal:
            return self.debit - self.credit
        return self.credit - self.debit
