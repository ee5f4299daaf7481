"""
Cashier Domain Models (``ledger_modules.cashier.models``).

Frozen value objects returned by the cashier service.  Pure data, no I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO


@dataclass(frozen=True)
class ShiftClosingInfo:
    """A persisted shift closing."""

    id: UUID
    hospital_id: UUID
    operator_id: UUID
    range_start: datetime
    range_end: datetime
    system_cash_total: Decimal
    actual_cash_total: Decimal
    difference: Decimal
    note: str | None = None
    entry_id: UUID | None = None

    @property
    def is_balanced(self) -> bool:
        return self.difference == 0

    @property
    def is_over(self) -> bool:
        return self.difference > 0

    @property
    def is_short(self) -> bool:
        return self.difference < 0


@dataclass(frozen=True)
class MethodTotal:
    method: str
    total_amount: Decimal
    count: int


@dataclass(frozen=True)
class ShiftReport:
    """Collections of one operator over [range_start, range_end)."""

    hospital_id: UUID
    operator_id: UUID
    range_start: datetime
    range_end: datetime
    by_method: tuple[MethodTotal, ...] = field(default_factory=tuple)
    total_amount: Decimal = ZERO
    cash_total: Decimal = ZERO
    payment_count: int = 0
