"""
Billing ORM Models (``ledger_modules.billing.orm``).

Responsibility
--------------
SQLAlchemy persistence for insurance providers, invoices, invoice lines and
patient payments.  ``to_dto()`` maps rows to the frozen dataclasses in
``models.py``.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``ledger_kernel``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO
from ledger_modules.billing.models import (
    ClaimStatus,
    InsuranceProviderInfo,
    InvoiceInfo,
    InvoiceLineInfo,
    InvoiceStatus,
    PaymentInfo,
    PaymentMethod,
)


class InsuranceProviderModel(TrackedBase):
    """
    An insurer billed for the insurance share of invoices.

    receivable_account_id, when set, overrides RECEIVABLE_INSURANCE for
    this insurer's postings.
    """

    __tablename__ = "insurance_providers"

    __table_args__ = (
        UniqueConstraint("hospital_id", "name", name="uq_insurance_provider_name"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    receivable_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> InsuranceProviderInfo:
        return InsuranceProviderInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            name=self.name,
            receivable_account_id=self.receivable_account_id,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<InsuranceProviderModel {self.name}>"


class InvoiceModel(TrackedBase):
    """
    A patient invoice.

    Guarantees:
        - invoice_number is unique per hospital.
        - patient_share + insurance_share == total_amount - discount_amount.
        - status and claim_status are stored as enum values.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("hospital_id", "invoice_number", name="uq_invoice_number"),
        Index("idx_invoices_hospital_status", "hospital_id", "status"),
        Index("idx_invoices_patient", "patient_id"),
        Index("idx_invoices_provider_claim", "insurance_provider_id", "claim_status"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    patient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    insurance_provider_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("insurance_providers.id"), nullable=True
    )
    coverage_plan_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("coverage_plans.id"), nullable=True
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)
    claim_status: Mapped[str] = mapped_column(String(20), nullable=False, default=ClaimStatus.NONE.value)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    patient_share: Mapped[Decimal] = mapped_column(nullable=False)
    insurance_share: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    claim_settled_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLineModel.line_no",
        lazy="selectin",
    )
    insurance_provider: Mapped[InsuranceProviderModel | None] = relationship(lazy="joined")

    def to_dto(self) -> InvoiceInfo:
        return InvoiceInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            invoice_number=self.invoice_number,
            patient_id=self.patient_id,
            invoice_date=self.invoice_date,
            status=InvoiceStatus(self.status),
            claim_status=ClaimStatus(self.claim_status),
            total_amount=self.total_amount,
            discount_amount=self.discount_amount,
            patient_share=self.patient_share,
            insurance_share=self.insurance_share,
            paid_amount=self.paid_amount,
            insurance_provider_id=self.insurance_provider_id,
            coverage_plan_id=self.coverage_plan_id,
            claim_settled_on=self.claim_settled_on,
            settlement_entry_id=self.settlement_entry_id,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} {self.status}/{self.claim_status}>"


class InvoiceLineModel(TrackedBase):
    """One charge on an invoice with its coverage split."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_no", name="uq_invoice_line_no"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    service_type: Mapped[str] = mapped_column(String(30), nullable=False)
    service_category_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    service_item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    patient_share: Mapped[Decimal] = mapped_column(nullable=False)
    insurance_share: Mapped[Decimal] = mapped_column(nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rule_applied: Mapped[str] = mapped_column(String(100), nullable=False)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="lines")

    def to_dto(self) -> InvoiceLineInfo:
        return InvoiceLineInfo(
            id=self.id,
            line_no=self.line_no,
            service_type=self.service_type,
            description=self.description,
            amount=self.amount,
            patient_share=self.patient_share,
            insurance_share=self.insurance_share,
            requires_approval=self.requires_approval,
            rule_applied=self.rule_applied,
            service_category_id=self.service_category_id,
            service_item_id=self.service_item_id,
        )


class PaymentModel(TrackedBase):
    """
    Money received from a patient, by an operator, at a point in time.

    A payment with no invoice_id is an advance and is reported as
    unallocated credit.
    """

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payments_operator_paid_at", "operator_id", "paid_at"),
        Index("idx_payments_invoice", "invoice_id"),
        Index("idx_payments_patient", "hospital_id", "patient_id"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    patient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    operator_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    def to_dto(self) -> PaymentInfo:
        return PaymentInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            patient_id=self.patient_id,
            amount=self.amount,
            method=PaymentMethod(self.method),
            operator_id=self.operator_id,
            paid_at=self.paid_at,
            invoice_id=self.invoice_id,
            entry_id=self.entry_id,
        )
