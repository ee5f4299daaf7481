"""
Purchasing Domain Models (``ledger_modules.purchasing.models``).

Frozen value objects for suppliers, supplier purchase invoices and supplier
payments.  Pure data, no I/O.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import ZERO


class PurchaseInvoiceStatus(str, Enum):
    POSTED = "POSTED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


@dataclass(frozen=True)
class SupplierInfo:
    id: UUID
    hospital_id: UUID
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class PurchaseInvoiceInfo:
    id: UUID
    hospital_id: UUID
    supplier_id: UUID
    invoice_number: str
    invoice_date: date
    category: str
    total_amount: Decimal
    paid_amount: Decimal
    status: PurchaseInvoiceStatus
    entry_id: UUID | None = None

    @property
    def remaining(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, ZERO)


@dataclass(frozen=True)
class SupplierPaymentInfo:
    id: UUID
    hospital_id: UUID
    supplier_id: UUID
    amount: Decimal
    method: str
    paid_on: date
    purchase_invoice_id: UUID | None = None
    entry_id: UUID | None = None

    @property
    def is_unallocated(self) -> bool:
        return self.purchase_invoice_id is None
