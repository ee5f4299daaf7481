"""
Purchasing ORM Models (``ledger_modules.purchasing.orm``).

Responsibility
--------------
Persistence for suppliers, supplier purchase invoices and supplier
payments.  These rows feed payables aging.

Architecture position
---------------------
**Modules layer** -- persistence.  MUST NOT be imported by ``ledger_kernel``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import ZERO
from ledger_modules.purchasing.models import (
    PurchaseInvoiceInfo,
    PurchaseInvoiceStatus,
    SupplierInfo,
    SupplierPaymentInfo,
)


class SupplierModel(TrackedBase):
    __tablename__ = "suppliers"

    __table_args__ = (
        UniqueConstraint("hospital_id", "name", name="uq_supplier_name"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> SupplierInfo:
        return SupplierInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            name=self.name,
            is_active=self.is_active,
        )


class PurchaseInvoiceModel(TrackedBase):
    """
    A supplier's invoice for stock received.

    Guarantees:
        - (hospital, supplier, invoice_number) is unique.
        - paid_amount never exceeds total_amount beyond tolerance.
    """

    __tablename__ = "purchase_invoices"

    __table_args__ = (
        UniqueConstraint(
            "hospital_id", "supplier_id", "invoice_number", name="uq_purchase_invoice_number"
        ),
        Index("idx_purchase_invoices_supplier", "hospital_id", "supplier_id"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("suppliers.id"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PurchaseInvoiceStatus.POSTED.value
    )
    entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    supplier: Mapped[SupplierModel] = relationship(lazy="joined")

    def to_dto(self) -> PurchaseInvoiceInfo:
        return PurchaseInvoiceInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            supplier_id=self.supplier_id,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            category=self.category,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            status=PurchaseInvoiceStatus(self.status),
            entry_id=self.entry_id,
        )


class SupplierPaymentModel(TrackedBase):
    """Money paid to a supplier; without a purchase invoice it is unallocated."""

    __tablename__ = "supplier_payments"

    __table_args__ = (
        Index("idx_supplier_payments_supplier", "hospital_id", "supplier_id"),
        Index("idx_supplier_payments_invoice", "purchase_invoice_id"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("suppliers.id"), nullable=False
    )
    purchase_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_invoices.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_on: Mapped[date] = mapped_column(Date, nullable=False)
    entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    def to_dto(self) -> SupplierPaymentInfo:
        return SupplierPaymentInfo(
            id=self.id,
            hospital_id=self.hospital_id,
            supplier_id=self.supplier_id,
            amount=self.amount,
            method=self.method,
            paid_on=self.paid_on,
            purchase_invoice_id=self.purchase_invoice_id,
            entry_id=self.entry_id,
        )
