"""
Cashier ORM Models (``ledger_modules.cashier.orm``).

Responsibility
--------------
Persistence for cashier shift closings.  A closing records what the system
expected in the drawer and what the operator counted; it is append-only.

Architecture position
---------------------
**Modules layer** -- persistence.  Payments themselves live in
``ledger_modules.billing.orm``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.immutability import guard_append_only
from ledger_modules.cashier.models import ShiftClosingInfo


class CashierShiftClosingModel(TrackedBase):
    """
    One closed cashier shift.

    Guarantees:
        - difference == actual_cash_total - system_cash_total.
        - Rows are never updated or deleted (see register_cashier_guards).
        - entry_id is set at insert when an over/short entry was posted.
    """

    __tablename__ = "cashier_shift_closings"

    __table_args__ = (
        Index("idx_shift_operator_range", "hospital_id", "operator_id", "range_start"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    operator_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    range_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    range_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    system_cash_total: Mapped[Decimal] = mapped_column(nullable=False)
    actual_cash_total: Mapped[Decimal] = mapped_column(nullable=False)
    difference: Mapped[Decimal] = mapped_column(nullable=False)
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    def to_dto(self) -> ShiftClosingInfo:
        return ShiftClosingInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            operator_id=self.operator_id,
            range_start=self.range_start,
            range_end=self.range_end,
            system_cash_total=self.system_cash_total,
            actual_cash_total=self.actual_cash_total,
            difference=self.difference,
            note=self.note,
            entry_id=self.entry_id,
        )

    def __repr__(self) -> str:
        return f"<CashierShiftClosingModel {self.operator_id} {self.range_start}..{self.range_end}>"


def register_cashier_guards() -> None:
    """Make shift closings append-only (idempotent)."""
    guard_append_only(CashierShiftClosingModel, "CashierShiftClosing")


register_cashier_guards()
