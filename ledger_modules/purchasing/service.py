"""
Purchasing Module Service - supplier invoices and supplier payments.

Thin glue layer that:
1. Records supplier purchase invoices and posts Dr inventory / Cr payables
2. Records supplier payments (against an invoice, or unallocated) and posts
   Dr payables / Cr cash or bank

Both postings carry source INVENTORY.  Stock quantities are owned by the
stores system.  This service owns the transaction boundary.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_kernel.db.types import ZERO, has_money_precision
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    InvalidAmountError,
    OverpaymentError,
    PurchaseInvoiceNotFoundError,
    SupplierNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_modules.billing.models import PaymentMethod
from ledger_modules.cashier.service import cash_account_for
from ledger_modules.inventory.service import DispenseCategory
from ledger_modules.purchasing.models import (
    PurchaseInvoiceInfo,
    PurchaseInvoiceStatus,
    SupplierInfo,
    SupplierPaymentInfo,
)
from ledger_modules.purchasing.orm import (
    PurchaseInvoiceModel,
    SupplierModel,
    SupplierPaymentModel,
)

logger = get_logger("modules.purchasing.service")

PURCHASE_INVOICE_PURPOSE = "purchase-invoice"
SUPPLIER_PAYMENT_PURPOSE = "supplier-payment"


class PurchasingService:
    """
    Supplier payables.

    Transaction boundary: this service commits on success, rolls back on
    failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()
        self._writer = JournalWriter(session, self._clock)

    def create_supplier(self, hospital_id: UUID, name: str, actor_id: UUID) -> SupplierInfo:
        try:
            supplier = SupplierModel(
                hospital_id=hospital_id, name=name, is_active=True, created_by_id=actor_id
            )
            self._session.add(supplier)
            self._session.flush()
            self._session.commit()
            logger.info(
                "supplier_created",
                extra={"supplier_id": str(supplier.id), "supplier_name": name},
            )
            return supplier.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def record_purchase_invoice(
        self,
        hospital_id: UUID,
        supplier_id: UUID,
        invoice_number: str,
        total_amount: Decimal,
        actor_id: UUID,
        invoice_date: date | None = None,
        category: DispenseCategory | str = DispenseCategory.PHARMACY,
    ) -> PurchaseInvoiceInfo:
        """
        Record a supplier invoice and post it to payables.

        Recording the same (supplier, invoice_number) again returns the
        existing invoice unchanged.

        Raises:
            SupplierNotFoundError, InvalidAmountError,
            PeriodNotOpenError, ConfigurationError.
        """
        category = DispenseCategory(category)
        _check_positive("total_amount", total_amount)
        try:
            supplier = self._get_supplier(hospital_id, supplier_id)

            existing = self._session.execute(
                select(PurchaseInvoiceModel).where(
                    PurchaseInvoiceModel.hospital_id == hospital_id,
                    PurchaseInvoiceModel.supplier_id == supplier.id,
                    PurchaseInvoiceModel.invoice_number == invoice_number,
                )
            ).scalar_one_or_none()
            if existing is not None:
                logger.info(
                    "purchase_invoice_replayed",
                    extra={"purchase_invoice_id": str(existing.id)},
                )
                return existing.to_dto()

            invoice_id = uuid4()
            invoice_date = invoice_date or self._clock.today()
            posting = self._writer.post_entry(
                hospital_id=hospital_id,
                entry_date=invoice_date,
                description=f"Purchase invoice {invoice_number} from {supplier.name}",
                source_module=SourceModule.INVENTORY,
                source_id=invoice_id,
                lines=[
                    LineSpec.dr(category.inventory_key, total_amount),
                    LineSpec.cr(SystemAccountKey.PAYABLE_SUPPLIERS, total_amount),
                ],
                actor_id=actor_id,
                purpose=PURCHASE_INVOICE_PURPOSE,
            )
            invoice = PurchaseInvoiceModel(
                id=invoice_id,
                hospital_id=hospital_id,
                supplier_id=supplier.id,
                invoice_number=invoice_number,
                invoice_date=invoice_date,
                category=category.value,
                total_amount=total_amount,
                paid_amount=ZERO,
                status=PurchaseInvoiceStatus.POSTED.value,
                entry_id=posting.entry.id,
                created_by_id=actor_id,
            )
            self._session.add(invoice)
            self._session.flush()
            self._session.commit()
            logger.info(
                "purchase_invoice_recorded",
                extra={
                    "purchase_invoice_id": str(invoice.id),
                    "supplier_id": str(supplier.id),
                    "amount": str(total_amount),
                },
            )
            return invoice.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def record_supplier_payment(
        self,
        hospital_id: UUID,
        supplier_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        actor_id: UUID,
        purchase_invoice_id: UUID | None = None,
        paid_on: date | None = None,
    ) -> SupplierPaymentInfo:
        """
        Pay a supplier, against one of its invoices or on account.

        Raises:
            SupplierNotFoundError, PurchaseInvoiceNotFoundError,
            InvalidAmountError, OverpaymentError, PeriodNotOpenError.
        """
        method = PaymentMethod(method)
        _check_positive("amount", amount)
        try:
            supplier = self._get_supplier(hospital_id, supplier_id)

            invoice = None
            if purchase_invoice_id is not None:
                invoice = self._session.execute(
                    select(PurchaseInvoiceModel)
                    .where(PurchaseInvoiceModel.id == purchase_invoice_id)
                    .with_for_update(of=PurchaseInvoiceModel)
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if invoice is None or invoice.supplier_id != supplier.id:
                    raise PurchaseInvoiceNotFoundError(str(purchase_invoice_id))
                remaining = invoice.total_amount - invoice.paid_amount
                if amount > remaining + self._settings.tolerances.invoice_balance:
                    raise OverpaymentError(
                        str(purchase_invoice_id), str(amount), str(remaining)
                    )

            payment_id = uuid4()
            paid_on = paid_on or self._clock.today()
            posting = self._writer.post_entry(
                hospital_id=hospital_id,
                entry_date=paid_on,
                description=f"Payment to {supplier.name}",
                source_module=SourceModule.INVENTORY,
                source_id=payment_id,
                lines=[
                    LineSpec.dr(SystemAccountKey.PAYABLE_SUPPLIERS, amount),
                    LineSpec.cr(cash_account_for(method), amount),
                ],
                actor_id=actor_id,
                purpose=SUPPLIER_PAYMENT_PURPOSE,
            )
            payment = SupplierPaymentModel(
                id=payment_id,
                hospital_id=hospital_id,
                supplier_id=supplier.id,
                purchase_invoice_id=purchase_invoice_id,
                amount=amount,
                method=method.value,
                paid_on=paid_on,
                entry_id=posting.entry.id,
                created_by_id=actor_id,
            )
            self._session.add(payment)

            if invoice is not None:
                invoice.paid_amount = invoice.paid_amount + amount
                tolerance = self._settings.tolerances.invoice_balance
                if invoice.paid_amount >= invoice.total_amount - tolerance:
                    invoice.status = PurchaseInvoiceStatus.PAID.value
                else:
                    invoice.status = PurchaseInvoiceStatus.PARTIALLY_PAID.value
                invoice.updated_by_id = actor_id

            self._session.flush()
            self._session.commit()
            logger.info(
                "supplier_payment_recorded",
                extra={
                    "supplier_id": str(supplier.id),
                    "purchase_invoice_id": str(purchase_invoice_id) if purchase_invoice_id else None,
                    "amount": str(amount),
                    "method": method.value,
                },
            )
            return payment.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def list_purchase_invoices(
        self,
        hospital_id: UUID,
        supplier_id: UUID | None = None,
    ) -> list[PurchaseInvoiceInfo]:
        stmt = select(PurchaseInvoiceModel).where(PurchaseInvoiceModel.hospital_id == hospital_id)
        if supplier_id is not None:
            stmt = stmt.where(PurchaseInvoiceModel.supplier_id == supplier_id)
        rows = self._session.execute(
            stmt.order_by(PurchaseInvoiceModel.invoice_date, PurchaseInvoiceModel.invoice_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def _get_supplier(self, hospital_id: UUID, supplier_id: UUID) -> SupplierModel:
        supplier = self._session.get(SupplierModel, supplier_id)
        if supplier is None or supplier.hospital_id != hospital_id:
            raise SupplierNotFoundError(str(supplier_id))
        return supplier


def _check_positive(field_name: str, amount: Decimal) -> None:
    if not isinstance(amount, Decimal):
        raise InvalidAmountError(field_name, repr(amount), "must be a Decimal")
    if amount <= 0:
        raise InvalidAmountError(field_name, str(amount), "must be positive")
    if not has_money_precision(amount):
        raise InvalidAmountError(field_name, str(amount), "too many fractional digits")
