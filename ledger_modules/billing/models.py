"""
Billing Domain Models (``ledger_modules.billing.models``).

Responsibility
--------------
Frozen value objects for invoices, invoice lines, payments and insurance
providers, plus the status enums shared by billing, claims, cashier and
reporting.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields are ``Decimal`` at currency precision.
* ``patient_share + insurance_share == total_amount - discount_amount``
  for every invoice (within the invoice tolerance).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import ZERO


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""

    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class ClaimStatus(str, Enum):
    """Insurer-facing claim lifecycle, independent of patient payment."""

    NONE = "NONE"
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"


class ServiceType(str, Enum):
    """Origin of a charge; selects the revenue account."""

    CONSULTATION = "CONSULTATION"
    PROCEDURE = "PROCEDURE"
    LAB = "LAB"
    RADIOLOGY = "RADIOLOGY"
    PHARMACY = "PHARMACY"
    INPATIENT = "INPATIENT"
    BED = "BED"
    OTHER = "OTHER"


@dataclass(frozen=True)
class ChargeRequest:
    """One billable service to put on an invoice."""

    service_type: ServiceType
    amount: Decimal
    description: str
    service_category_id: str | None = None
    service_item_id: str | None = None


@dataclass(frozen=True)
class InvoiceLineInfo:
    id: UUID
    line_no: int
    service_type: str
    description: str
    amount: Decimal
    patient_share: Decimal
    insurance_share: Decimal
    requires_approval: bool
    rule_applied: str
    service_category_id: str | None = None
    service_item_id: str | None = None


@dataclass(frozen=True)
class InvoiceInfo:
    """Read-only view of an invoice."""

    id: UUID
    hospital_id: UUID
    invoice_number: str
    patient_id: UUID
    invoice_date: date
    status: InvoiceStatus
    claim_status: ClaimStatus
    total_amount: Decimal
    discount_amount: Decimal
    patient_share: Decimal
    insurance_share: Decimal
    paid_amount: Decimal
    insurance_provider_id: UUID | None = None
    coverage_plan_id: UUID | None = None
    claim_settled_on: date | None = None
    settlement_entry_id: UUID | None = None
    lines: tuple[InvoiceLineInfo, ...] = field(default_factory=tuple)

    @property
    def net_amount(self) -> Decimal:
        return self.total_amount - self.discount_amount

    @property
    def remaining_patient_balance(self) -> Decimal:
        return max(self.patient_share - self.paid_amount, ZERO)

    @property
    def requires_approval(self) -> bool:
        return any(line.requires_approval for line in self.lines)


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    hospital_id: UUID
    patient_id: UUID
    amount: Decimal
    method: PaymentMethod
    operator_id: UUID
    paid_at: datetime
    invoice_id: UUID | None = None
    entry_id: UUID | None = None

    @property
    def is_advance(self) -> bool:
        return self.invoice_id is None


@dataclass(frozen=True)
class InsuranceProviderInfo:
    id: UUID
    hospital_id: UUID
    name: str
    receivable_account_id: UUID | None = None
    is_active: bool = True
