"""
Reporting Module Service - counterparty aging as of a date.

Thin glue layer that:
1. Gathers the documents open for a counterparty kind as of a date
   (patient invoices, insurer claims, supplier purchase invoices)
2. Computes each document's outstanding balance from the payments and
   settlements dated on or before that date
3. Calls AgingCalculator to bucket and roll them up

Read-only: never writes, never commits.

Usage:
    report = AgingReportService(session).get_aging_report(
        hospital_id, date(2026, 3, 31), CounterpartyKind.INSURER,
    )
    report.totals.total == sum(row.total for row in report.rows)
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_engines.aging import AgedDocument, AgingCalculator, AgingReport, buckets_from_bounds
from ledger_kernel.db.types import ZERO
from ledger_kernel.logging_config import get_logger
from ledger_modules.billing.models import ClaimStatus, InvoiceStatus
from ledger_modules.billing.orm import InsuranceProviderModel, InvoiceModel, PaymentModel
from ledger_modules.purchasing.orm import (
    PurchaseInvoiceModel,
    SupplierModel,
    SupplierPaymentModel,
)

logger = get_logger("modules.reporting.service")

UNASSIGNED_INSURER = "UNASSIGNED"

_EXCLUDED_INVOICE_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value)


class CounterpartyKind(str, Enum):
    PATIENT = "PATIENT"
    INSURER = "INSURER"
    SUPPLIER = "SUPPLIER"


class AgingReportService:
    """
    Aged balances per patient, insurer or supplier.

    Engine composition:
    - AgingCalculator: bucketing and roll-up, with buckets from settings
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        calculator: AgingCalculator | None = None,
    ):
        self._session = session
        self._settings = settings or get_settings()
        self._calculator = calculator or AgingCalculator(
            buckets_from_bounds(self._settings.aging.bucket_bounds)
        )

    def get_aging_report(
        self,
        hospital_id: UUID,
        as_of_date: date,
        kind: CounterpartyKind | str = CounterpartyKind.PATIENT,
    ) -> AgingReport:
        """
        Build the aging report for one counterparty kind.

        Balances at or below the invoice tolerance are left out.  Unallocated
        credit (patient advances, supplier payments on account) is reported
        beside the buckets, never netted into them.
        """
        kind = CounterpartyKind(kind)
        if kind == CounterpartyKind.PATIENT:
            documents, credits, names = self._patient_documents(hospital_id, as_of_date)
        elif kind == CounterpartyKind.INSURER:
            documents, credits, names = self._insurer_documents(hospital_id, as_of_date)
        else:
            documents, credits, names = self._supplier_documents(hospital_id, as_of_date)

        tolerance = self._settings.tolerances.invoice_balance
        documents = [doc for doc in documents if doc.outstanding > tolerance]

        logger.debug(
            "aging_documents_collected",
            extra={
                "hospital_id": str(hospital_id),
                "report_type": kind.value,
                "document_count": len(documents),
            },
        )
        return self._calculator.build_report(
            as_of_date=as_of_date,
            documents=documents,
            kind=kind.value,
            unallocated_credit=credits,
            counterparty_names=names,
        )

    # =========================================================================
    # Document sources
    # =========================================================================

    def _patient_documents(self, hospital_id: UUID, as_of_date: date):
        cutoff = _end_of_day(as_of_date)
        invoices = self._open_invoices(hospital_id, as_of_date)

        paid_rows = self._session.execute(
            select(PaymentModel.invoice_id, func.sum(PaymentModel.amount))
            .where(
                PaymentModel.hospital_id == hospital_id,
                PaymentModel.invoice_id.is_not(None),
                PaymentModel.paid_at < cutoff,
            )
            .group_by(PaymentModel.invoice_id)
        ).all()
        paid = {invoice_id: total or ZERO for invoice_id, total in paid_rows}

        documents = [
            AgedDocument(
                document_id=str(inv.id),
                counterparty_id=str(inv.patient_id),
                document_date=inv.invoice_date,
                outstanding=inv.patient_share - paid.get(inv.id, ZERO),
                reference=inv.invoice_number,
            )
            for inv in invoices
        ]

        advance_rows = self._session.execute(
            select(PaymentModel.patient_id, func.sum(PaymentModel.amount))
            .where(
                PaymentModel.hospital_id == hospital_id,
                PaymentModel.invoice_id.is_(None),
                PaymentModel.paid_at < cutoff,
            )
            .group_by(PaymentModel.patient_id)
        ).all()
        credits = {str(patient_id): total or ZERO for patient_id, total in advance_rows}
        return documents, credits, {}

    def _insurer_documents(self, hospital_id: UUID, as_of_date: date):
        documents = []
        for inv in self._open_invoices(hospital_id, as_of_date):
            if inv.insurance_share <= 0:
                continue
            settled = (
                inv.claim_status == ClaimStatus.PAID.value
                and inv.claim_settled_on is not None
                and inv.claim_settled_on <= as_of_date
            )
            if settled:
                continue
            documents.append(
                AgedDocument(
                    document_id=str(inv.id),
                    counterparty_id=(
                        str(inv.insurance_provider_id)
                        if inv.insurance_provider_id
                        else UNASSIGNED_INSURER
                    ),
                    document_date=inv.invoice_date,
                    outstanding=inv.insurance_share,
                    reference=inv.invoice_number,
                )
            )

        providers = self._session.execute(
            select(InsuranceProviderModel.id, InsuranceProviderModel.name).where(
                InsuranceProviderModel.hospital_id == hospital_id
            )
        ).all()
        names = {str(provider_id): name for provider_id, name in providers}
        return documents, {}, names

    def _supplier_documents(self, hospital_id: UUID, as_of_date: date):
        invoices = self._session.execute(
            select(PurchaseInvoiceModel)
            .where(
                PurchaseInvoiceModel.hospital_id == hospital_id,
                PurchaseInvoiceModel.invoice_date <= as_of_date,
            )
            .order_by(PurchaseInvoiceModel.invoice_date)
        ).scalars().all()

        paid_rows = self._session.execute(
            select(SupplierPaymentModel.purchase_invoice_id, func.sum(SupplierPaymentModel.amount))
            .where(
                SupplierPaymentModel.hospital_id == hospital_id,
                SupplierPaymentModel.purchase_invoice_id.is_not(None),
                SupplierPaymentModel.paid_on <= as_of_date,
            )
            .group_by(SupplierPaymentModel.purchase_invoice_id)
        ).all()
        paid = {invoice_id: total or ZERO for invoice_id, total in paid_rows}

        documents = [
            AgedDocument(
                document_id=str(inv.id),
                counterparty_id=str(inv.supplier_id),
                document_date=inv.invoice_date,
                outstanding=inv.total_amount - paid.get(inv.id, ZERO),
                reference=inv.invoice_number,
            )
            for inv in invoices
        ]

        unallocated_rows = self._session.execute(
            select(SupplierPaymentModel.supplier_id, func.sum(SupplierPaymentModel.amount))
            .where(
                SupplierPaymentModel.hospital_id == hospital_id,
                SupplierPaymentModel.purchase_invoice_id.is_(None),
                SupplierPaymentModel.paid_on <= as_of_date,
            )
            .group_by(SupplierPaymentModel.supplier_id)
        ).all()
        credits = {str(supplier_id): total or ZERO for supplier_id, total in unallocated_rows}

        suppliers = self._session.execute(
            select(SupplierModel.id, SupplierModel.name).where(
                SupplierModel.hospital_id == hospital_id
            )
        ).all()
        names = {str(supplier_id): name for supplier_id, name in suppliers}
        return documents, credits, names

    def _open_invoices(self, hospital_id: UUID, as_of_date: date) -> list[InvoiceModel]:
        return list(
            self._session.execute(
                select(InvoiceModel)
                .where(
                    InvoiceModel.hospital_id == hospital_id,
                    InvoiceModel.status.not_in(_EXCLUDED_INVOICE_STATUSES),
                    InvoiceModel.invoice_date <= as_of_date,
                )
                .order_by(InvoiceModel.invoice_date, InvoiceModel.invoice_number)
            ).scalars().all()
        )


def _end_of_day(as_of_date: date) -> datetime:
    """First instant after ``as_of_date`` (UTC); payments before it count."""
    return datetime.combine(as_of_date + timedelta(days=1), time.min, tzinfo=timezone.utc)


def outstanding_total(report: AgingReport) -> Decimal:
    """Bucketed balance net of unallocated credit."""
    return report.grand_total - report.total_unallocated_credit
