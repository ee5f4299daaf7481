"""
Billing Module Service - invoices, insurers and the invoice-issuance posting.

Thin glue layer that:
1. Calls CoverageCalculator to split every charge between patient and insurer
2. Persists invoices and their lines (DRAFT)
3. Issues invoices through the financial calendar gate and publishes
   InvoiceIssued, or posts directly when no event bus is wired
4. Calls JournalWriter for the issuance entry (Dr receivables / Cr revenue)

All split arithmetic lives in ledger_engines.coverage.  All posting lives in
the kernel.  This service owns the transaction boundary.

Usage:
    service = BillingService(session, clock=clock, settings=settings)
    invoice = service.create_invoice(
        hospital_id=hospital_id, patient_id=patient_id,
        charges=[ChargeRequest(ServiceType.LAB, Decimal("100.000"), "CBC")],
        actor_id=actor_id, coverage_plan_id=plan_id,
    )
    service.issue_invoice(invoice.id, actor_id)
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_engines.coverage import CoverageCalculator
from ledger_kernel.db.types import ZERO, has_money_precision
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryInfo, LineSpec
from ledger_kernel.exceptions import (
    CoveragePlanNotFoundError,
    InsuranceProviderNotFoundError,
    InvalidAccountError,
    InvalidAmountError,
    InvalidInvoiceStateError,
    InvoiceNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.calendar_service import CalendarService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.billing.models import (
    ChargeRequest,
    ClaimStatus,
    InsuranceProviderInfo,
    InvoiceInfo,
    InvoiceStatus,
    ServiceType,
)
from ledger_modules.billing.orm import (
    InsuranceProviderModel,
    InvoiceLineModel,
    InvoiceModel,
    PaymentModel,
)
from ledger_modules.coverage.orm import CoveragePlanModel
from ledger_services.events import InvoiceIssued

logger = get_logger("modules.billing.service")

INVOICE_ISSUED_PURPOSE = "invoice-issued"

_CANCELLABLE_CLAIM_STATUSES = frozenset({ClaimStatus.NONE.value, ClaimStatus.PENDING.value})


def insurer_receivable(provider: InsuranceProviderModel | None) -> UUID | SystemAccountKey:
    """Receivable account for an insurer: its own account, else the shared key."""
    if provider is not None and provider.receivable_account_id is not None:
        return provider.receivable_account_id
    return SystemAccountKey.RECEIVABLE_INSURANCE


def invoice_sequence_name(hospital_id: UUID) -> str:
    return f"invoice:{hospital_id}"


def lock_invoice(session: Session, invoice_id: UUID) -> InvoiceModel:
    """Load an invoice FOR UPDATE or raise InvoiceNotFoundError."""
    invoice = session.execute(
        select(InvoiceModel)
        .where(InvoiceModel.id == invoice_id)
        .with_for_update(of=InvoiceModel)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if invoice is None:
        raise InvoiceNotFoundError(str(invoice_id))
    return invoice


class BillingService:
    """
    Invoice lifecycle and its ledger consequences.

    Engine composition:
    - CoverageCalculator: per-line patient/insurer split

    Transaction boundary: every mutating method commits on success and rolls
    back on failure.  When an event bus is supplied, issue_invoice commits
    the ISSUED state before publishing InvoiceIssued so that listeners,
    which run in their own sessions, see it.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        event_bus=None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()
        self._bus = event_bus

        self._registry = AccountRegistry(session)
        self._calendar = CalendarService(session, self._clock)
        self._writer = JournalWriter(session, self._clock, self._registry, self._calendar)
        self._reversals = ReversalService(session, self._clock, self._writer)
        self._sequences = SequenceService(session)

        self._coverage = CoverageCalculator()

    # =========================================================================
    # Insurance providers
    # =========================================================================

    def create_insurance_provider(
        self,
        hospital_id: UUID,
        name: str,
        actor_id: UUID,
        receivable_account_id: UUID | None = None,
    ) -> InsuranceProviderInfo:
        """
        Register an insurer, optionally with its own receivable account.

        Raises:
            AccountNotFoundError, InvalidAccountError: bad receivable account.
        """
        try:
            if receivable_account_id is not None:
                account = self._registry.get_account(receivable_account_id)
                if account.hospital_id != hospital_id:
                    raise InvalidAccountError(
                        str(receivable_account_id), "account belongs to another hospital"
                    )
            provider = InsuranceProviderModel(
                hospital_id=hospital_id,
                name=name,
                receivable_account_id=receivable_account_id,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(provider)
            self._session.flush()
            self._session.commit()
            logger.info(
                "insurance_provider_created",
                extra={"provider_id": str(provider.id), "provider_name": name},
            )
            return provider.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def get_insurance_provider(self, provider_id: UUID) -> InsuranceProviderInfo:
        return self._get_provider(provider_id).to_dto()

    def _get_provider(self, provider_id: UUID) -> InsuranceProviderModel:
        provider = self._session.get(InsuranceProviderModel, provider_id)
        if provider is None:
            raise InsuranceProviderNotFoundError(str(provider_id))
        return provider

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_invoice(
        self,
        hospital_id: UUID,
        patient_id: UUID,
        charges: Sequence[ChargeRequest],
        actor_id: UUID,
        invoice_date: date | None = None,
        insurance_provider_id: UUID | None = None,
        coverage_plan_id: UUID | None = None,
        discount_amount: Decimal = ZERO,
        pre_authorized: bool = False,
    ) -> InvoiceInfo:
        """
        Create a DRAFT invoice with a coverage split per charge.

        The discount reduces the patient share first and the insurance share
        with whatever is left, so patient_share + insurance_share always
        equals total_amount - discount_amount.

        Raises:
            ValueError: no charges.
            InvalidAmountError: negative or over-precise amount, or a
                discount larger than the total.
            InsuranceProviderNotFoundError, CoveragePlanNotFoundError.
        """
        try:
            if not charges:
                raise ValueError("an invoice needs at least one charge")
            for charge in charges:
                _check_amount("amount", charge.amount)
            _check_amount("discount_amount", discount_amount)

            plan_spec = None
            if coverage_plan_id is not None:
                plan = self._session.get(CoveragePlanModel, coverage_plan_id)
                if plan is None:
                    raise CoveragePlanNotFoundError(str(coverage_plan_id))
                plan_spec = plan.to_spec()
                if insurance_provider_id is None:
                    insurance_provider_id = plan.insurance_provider_id
            if insurance_provider_id is not None:
                self._get_provider(insurance_provider_id)

            splits = self._coverage.compute_lines(
                plan_spec,
                [(c.service_category_id, c.service_item_id, c.amount) for c in charges],
                pre_authorized=pre_authorized,
            )

            total = sum((c.amount for c in charges), ZERO)
            if discount_amount > total:
                raise InvalidAmountError(
                    "discount_amount", str(discount_amount), f"exceeds invoice total {total}"
                )
            gross_patient = sum((s.patient_share for s in splits), ZERO)
            gross_insurance = sum((s.insurance_share for s in splits), ZERO)
            patient_discount = min(discount_amount, gross_patient)
            insurance_discount = discount_amount - patient_discount

            number = self._sequences.next_value(invoice_sequence_name(hospital_id))
            invoice = InvoiceModel(
                hospital_id=hospital_id,
                invoice_number=f"INV-{number:06d}",
                patient_id=patient_id,
                insurance_provider_id=insurance_provider_id,
                coverage_plan_id=coverage_plan_id,
                invoice_date=invoice_date or self._clock.today(),
                status=InvoiceStatus.DRAFT.value,
                claim_status=ClaimStatus.NONE.value,
                total_amount=total,
                discount_amount=discount_amount,
                patient_share=gross_patient - patient_discount,
                insurance_share=gross_insurance - insurance_discount,
                paid_amount=ZERO,
                created_by_id=actor_id,
            )
            self._session.add(invoice)
            self._session.flush()

            for line_no, (charge, split) in enumerate(zip(charges, splits), start=1):
                self._session.add(
                    InvoiceLineModel(
                        invoice_id=invoice.id,
                        line_no=line_no,
                        service_type=ServiceType(charge.service_type).value,
                        service_category_id=charge.service_category_id,
                        service_item_id=charge.service_item_id,
                        description=charge.description,
                        amount=charge.amount,
                        patient_share=split.patient_share,
                        insurance_share=split.insurance_share,
                        requires_approval=split.requires_approval,
                        rule_applied=split.rule_applied,
                        created_by_id=actor_id,
                    )
                )
            self._session.flush()
            self._session.commit()
            self._session.refresh(invoice)

            logger.info(
                "invoice_created",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "total_amount": str(total),
                    "patient_share": str(invoice.patient_share),
                    "insurance_share": str(invoice.insurance_share),
                    "line_count": len(charges),
                },
            )
            return invoice.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def issue_invoice(self, invoice_id: UUID, actor_id: UUID) -> InvoiceInfo:
        """
        Move a DRAFT invoice to ISSUED and get it onto the ledger.

        With an event bus the ISSUED state is committed and InvoiceIssued is
        published; the accounting listener posts the entry.  Without one the
        entry is posted in this transaction.  Issuing an already issued
        invoice re-delivers it, which is safe because the posting is
        idempotent.

        Raises:
            InvoiceNotFoundError, InvalidInvoiceStateError (CANCELLED),
            PeriodNotOpenError, ConfigurationError.
        """
        try:
            invoice = lock_invoice(self._session, invoice_id)
            with LogContext.bind(hospital_id=invoice.hospital_id, actor_id=actor_id):
                status = InvoiceStatus(invoice.status)
                if status == InvoiceStatus.CANCELLED:
                    raise InvalidInvoiceStateError(str(invoice_id), status.value, "issue")

                if status == InvoiceStatus.DRAFT:
                    self._calendar.resolve_open_period(invoice.hospital_id, invoice.invoice_date)
                    self._registry.require_keys(
                        invoice.hospital_id, self._required_keys(invoice)
                    )
                    invoice.status = InvoiceStatus.ISSUED.value
                    if invoice.insurance_share > 0:
                        invoice.claim_status = ClaimStatus.PENDING.value
                    invoice.updated_by_id = actor_id
                    self._session.flush()
                    logger.info(
                        "invoice_issued",
                        extra={
                            "invoice_id": str(invoice.id),
                            "invoice_number": invoice.invoice_number,
                        },
                    )

                if self._bus is None:
                    self._post_invoice_entry(invoice, actor_id)
                    self._session.commit()
                    return invoice.to_dto()

                self._session.commit()
                info = invoice.to_dto()

            self._bus.publish(
                InvoiceIssued(
                    invoice_id=info.id,
                    hospital_id=info.hospital_id,
                    actor_id=actor_id,
                    total_amount=info.total_amount,
                    patient_share=info.patient_share,
                    insurance_share=info.insurance_share,
                    insurance_provider_id=info.insurance_provider_id,
                )
            )
            return info
        except Exception:
            self._session.rollback()
            raise

    def record_invoice_entry(self, invoice_id: UUID, actor_id: UUID) -> EntryInfo | None:
        """
        Post (or replay) the issuance entry of an invoice.

        Returns:
            The entry, or None for a zero-total invoice.

        Raises:
            InvalidInvoiceStateError: DRAFT or CANCELLED invoice.
        """
        try:
            invoice = lock_invoice(self._session, invoice_id)
            entry = self._post_invoice_entry(invoice, actor_id)
            self._session.commit()
            return entry
        except Exception:
            self._session.rollback()
            raise

    def cancel_invoice(
        self,
        invoice_id: UUID,
        actor_id: UUID,
        reason: str = "invoice cancelled",
    ) -> InvoiceInfo:
        """
        Cancel a DRAFT invoice, or an ISSUED one nobody has paid or claimed.

        An issued invoice's entry is reversed, dated today (or the invoice
        date if that is later).

        Raises:
            InvalidInvoiceStateError: payments exist, the claim has moved
                past PENDING, or the invoice is already settled/cancelled.
        """
        try:
            invoice = lock_invoice(self._session, invoice_id)
            status = InvoiceStatus(invoice.status)

            if status == InvoiceStatus.ISSUED:
                if (
                    self._payment_count(invoice.id) > 0
                    or invoice.claim_status not in _CANCELLABLE_CLAIM_STATUSES
                ):
                    raise InvalidInvoiceStateError(str(invoice_id), status.value, "cancel")
                entry = self._find_invoice_entry(invoice)
                if entry is not None:
                    self._reversals.reverse_entry(
                        entry.id,
                        reason=reason,
                        actor_id=actor_id,
                        reversal_date=max(self._clock.today(), entry.entry_date),
                    )
            elif status != InvoiceStatus.DRAFT:
                raise InvalidInvoiceStateError(str(invoice_id), status.value, "cancel")

            invoice.status = InvoiceStatus.CANCELLED.value
            invoice.claim_status = ClaimStatus.NONE.value
            invoice.updated_by_id = actor_id
            self._session.flush()
            self._session.commit()
            logger.info(
                "invoice_cancelled",
                extra={
                    "invoice_id": str(invoice.id),
                    "previous_status": status.value,
                    "reason": reason,
                },
            )
            return invoice.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        invoice = self._session.get(InvoiceModel, invoice_id, populate_existing=True)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice.to_dto()

    def list_invoices(
        self,
        hospital_id: UUID,
        status: InvoiceStatus | None = None,
        patient_id: UUID | None = None,
    ) -> list[InvoiceInfo]:
        stmt = select(InvoiceModel).where(InvoiceModel.hospital_id == hospital_id)
        if status is not None:
            stmt = stmt.where(InvoiceModel.status == InvoiceStatus(status).value)
        if patient_id is not None:
            stmt = stmt.where(InvoiceModel.patient_id == patient_id)
        rows = self._session.execute(
            stmt.order_by(InvoiceModel.invoice_date, InvoiceModel.invoice_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Posting
    # =========================================================================

    def _required_keys(self, invoice: InvoiceModel) -> set[SystemAccountKey]:
        keys: set[SystemAccountKey] = set()
        if invoice.patient_share > 0:
            keys.add(SystemAccountKey.RECEIVABLE_PATIENTS)
        if invoice.insurance_share > 0:
            receivable = insurer_receivable(invoice.insurance_provider)
            if isinstance(receivable, SystemAccountKey):
                keys.add(receivable)
        if invoice.discount_amount > 0:
            keys.add(SystemAccountKey.DISCOUNT_ALLOWED)
        for line in invoice.lines:
            if line.amount > 0:
                keys.add(self._settings.revenue.key_for(line.service_type))
        return keys

    def _post_invoice_entry(self, invoice: InvoiceModel, actor_id: UUID) -> EntryInfo | None:
        status = InvoiceStatus(invoice.status)
        if status in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED):
            raise InvalidInvoiceStateError(str(invoice.id), status.value, "post")

        if invoice.total_amount == 0:
            logger.info("invoice_entry_skipped", extra={"invoice_id": str(invoice.id)})
            return None

        lines: list[LineSpec] = []
        if invoice.patient_share > 0:
            lines.append(
                LineSpec.dr(
                    SystemAccountKey.RECEIVABLE_PATIENTS,
                    invoice.patient_share,
                    "Patient share",
                )
            )
        if invoice.insurance_share > 0:
            lines.append(
                LineSpec.dr(
                    insurer_receivable(invoice.insurance_provider),
                    invoice.insurance_share,
                    "Insurance share",
                )
            )
        if invoice.discount_amount > 0:
            lines.append(
                LineSpec.dr(SystemAccountKey.DISCOUNT_ALLOWED, invoice.discount_amount, "Discount")
            )

        revenue: OrderedDict[SystemAccountKey, Decimal] = OrderedDict()
        for line in invoice.lines:
            if line.amount > 0:
                key = self._settings.revenue.key_for(line.service_type)
                revenue[key] = revenue.get(key, ZERO) + line.amount
        for key, amount in revenue.items():
            lines.append(LineSpec.cr(key, amount, "Revenue"))

        result = self._writer.post_entry(
            hospital_id=invoice.hospital_id,
            entry_date=invoice.invoice_date,
            description=f"Invoice {invoice.invoice_number}",
            source_module=SourceModule.BILLING,
            source_id=invoice.id,
            lines=lines,
            actor_id=actor_id,
            purpose=INVOICE_ISSUED_PURPOSE,
        )
        return result.entry

    def _find_invoice_entry(self, invoice: InvoiceModel) -> EntryInfo | None:
        entries = JournalSelector(self._session).entries_for_source(
            invoice.hospital_id, SourceModule.BILLING, invoice.id
        )
        for entry in entries:
            if entry.purpose == INVOICE_ISSUED_PURPOSE:
                return entry
        return None

    def _payment_count(self, invoice_id: UUID) -> int:
        return self._session.execute(
            select(func.count(PaymentModel.id)).where(PaymentModel.invoice_id == invoice_id)
        ).scalar_one()


def _check_amount(field_name: str, amount: Decimal) -> None:
    if not isinstance(amount, Decimal):
        raise InvalidAmountError(field_name, repr(amount), "must be a Decimal")
    if amount < 0:
        raise InvalidAmountError(field_name, str(amount), "cannot be negative")
    if not has_money_precision(amount):
        raise InvalidAmountError(field_name, str(amount), "too many fractional digits")
