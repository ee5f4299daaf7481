"""
Cashier Module Service - patient collections and shift reconciliation.

Thin glue layer that:
1. Records patient payments against invoices (or as advances) and posts
   Dr cash/bank / Cr patient receivables
2. Reports an operator's collections over a time range
3. Closes shifts: compares counted cash with recorded CASH payments and
   posts any over/short difference

Shift ranges are half-open: a payment at exactly ``range_end`` belongs to
the next shift.  This service owns the transaction boundary.

Usage:
    service = CashierService(session, clock=clock)
    service.record_payment(hospital_id, invoice.id, Decimal("20.000"),
                           PaymentMethod.CASH, operator_id, actor_id)
    closing = service.close_shift(hospital_id, operator_id, start, end,
                                  actual_cash=Decimal("20.000"), actor_id=actor_id)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_kernel.db.types import ZERO, has_money_precision
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    InvalidAmountError,
    InvalidInvoiceStateError,
    InvalidRangeError,
    InvoiceNotFoundError,
    NonNegativeCashRequiredError,
    OverpaymentError,
    ShiftOverlapError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.services.calendar_service import CalendarService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.billing.models import (
    ClaimStatus,
    InvoiceInfo,
    InvoiceStatus,
    PaymentInfo,
    PaymentMethod,
)
from ledger_modules.billing.orm import InvoiceModel, PaymentModel
from ledger_modules.billing.service import lock_invoice
from ledger_modules.cashier.models import MethodTotal, ShiftClosingInfo, ShiftReport
from ledger_modules.cashier.orm import CashierShiftClosingModel
from ledger_services.events import PaymentRecorded

logger = get_logger("modules.cashier.service")

PATIENT_PAYMENT_PURPOSE = "patient-payment"
ADVANCE_PAYMENT_PURPOSE = "patient-advance"
OVER_SHORT_PURPOSE = "shift-over-short"

_PAYABLE_STATUSES = frozenset(
    {
        InvoiceStatus.ISSUED.value,
        InvoiceStatus.PARTIALLY_PAID.value,
        InvoiceStatus.PAID.value,
    }
)


def cash_account_for(method: PaymentMethod) -> SystemAccountKey:
    """Drawer cash for CASH, the bank for everything else."""
    if PaymentMethod(method) == PaymentMethod.CASH:
        return SystemAccountKey.CASH_MAIN
    return SystemAccountKey.BANK_MAIN


class CashierService:
    """
    Patient payments and cashier shifts.

    Transaction boundary: this service commits on success, rolls back on
    failure.  PaymentRecorded is published after the commit when an event
    bus is supplied.
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
        self._calendar = CalendarService(session, self._clock)
        self._writer = JournalWriter(session, self._clock, calendar=self._calendar)
        self._sequences = SequenceService(session)

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        hospital_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        operator_id: UUID,
        actor_id: UUID,
        paid_at: datetime | None = None,
    ) -> tuple[InvoiceInfo, PaymentInfo | None]:
        """
        Collect part or all of an invoice's patient share.

        A zero amount records no payment; it confirms an invoice whose
        patient share is fully covered and advances its status.

        Returns:
            (updated invoice, payment or None for a zero amount).

        Raises:
            InvalidAmountError: negative or over-precise amount.
            OverpaymentError: amount exceeds the remaining patient liability.
            InvalidInvoiceStateError: DRAFT or CANCELLED invoice.
            InvoiceNotFoundError, PeriodNotOpenError, ConfigurationError.
        """
        paid_at = paid_at or self._clock.now()
        method = PaymentMethod(method)
        _check_amount(amount)

        with LogContext.bind(hospital_id=hospital_id, actor_id=actor_id):
            try:
                self._calendar.resolve_open_period(hospital_id, paid_at.date())

                invoice = lock_invoice(self._session, invoice_id)
                if invoice.hospital_id != hospital_id:
                    raise InvoiceNotFoundError(str(invoice_id))
                if invoice.status not in _PAYABLE_STATUSES:
                    raise InvalidInvoiceStateError(
                        str(invoice_id), invoice.status, "record_payment"
                    )

                remaining = max(invoice.patient_share - invoice.paid_amount, ZERO)
                if amount > remaining + self._settings.tolerances.invoice_balance:
                    raise OverpaymentError(str(invoice_id), str(amount), str(remaining))

                payment = None
                if amount > 0:
                    payment = self._insert_payment(
                        hospital_id=hospital_id,
                        patient_id=invoice.patient_id,
                        invoice_id=invoice.id,
                        amount=amount,
                        method=method,
                        operator_id=operator_id,
                        paid_at=paid_at,
                        actor_id=actor_id,
                        purpose=PATIENT_PAYMENT_PURPOSE,
                        description=f"Payment on {invoice.invoice_number}",
                    )
                    invoice.paid_amount = invoice.paid_amount + amount

                invoice.status = self._status_after_payment(invoice)
                invoice.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "payment_recorded" if payment is not None else "invoice_coverage_confirmed",
                extra={
                    "invoice_id": str(invoice.id),
                    "amount": str(amount),
                    "method": method.value,
                    "operator_id": str(operator_id),
                    "invoice_status": invoice.status,
                },
            )
            info = payment.to_dto() if payment is not None else None
            if info is not None:
                self._publish(info)
            return invoice.to_dto(), info

    def record_advance_payment(
        self,
        hospital_id: UUID,
        patient_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        operator_id: UUID,
        actor_id: UUID,
        paid_at: datetime | None = None,
    ) -> PaymentInfo:
        """
        Collect money not yet tied to an invoice.

        The credit lands on patient receivables and shows up as unallocated
        credit in patient aging.

        Raises:
            InvalidAmountError: amount not positive.
        """
        paid_at = paid_at or self._clock.now()
        method = PaymentMethod(method)
        _check_amount(amount)
        if amount == 0:
            raise InvalidAmountError("amount", str(amount), "an advance must be positive")

        with LogContext.bind(hospital_id=hospital_id, actor_id=actor_id):
            try:
                payment = self._insert_payment(
                    hospital_id=hospital_id,
                    patient_id=patient_id,
                    invoice_id=None,
                    amount=amount,
                    method=method,
                    operator_id=operator_id,
                    paid_at=paid_at,
                    actor_id=actor_id,
                    purpose=ADVANCE_PAYMENT_PURPOSE,
                    description="Patient advance",
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "advance_payment_recorded",
                extra={
                    "patient_id": str(patient_id),
                    "amount": str(amount),
                    "method": method.value,
                },
            )
            info = payment.to_dto()
            self._publish(info)
            return info

    def _insert_payment(
        self,
        *,
        hospital_id: UUID,
        patient_id: UUID,
        invoice_id: UUID | None,
        amount: Decimal,
        method: PaymentMethod,
        operator_id: UUID,
        paid_at: datetime,
        actor_id: UUID,
        purpose: str,
        description: str,
    ) -> PaymentModel:
        payment_id = uuid4()
        posting = self._writer.post_entry(
            hospital_id=hospital_id,
            entry_date=paid_at.date(),
            description=description,
            source_module=SourceModule.CASHIER,
            source_id=payment_id,
            lines=[
                LineSpec.dr(cash_account_for(method), amount),
                LineSpec.cr(SystemAccountKey.RECEIVABLE_PATIENTS, amount),
            ],
            actor_id=actor_id,
            purpose=purpose,
        )
        payment = PaymentModel(
            id=payment_id,
            hospital_id=hospital_id,
            patient_id=patient_id,
            invoice_id=invoice_id,
            amount=amount,
            method=method.value,
            operator_id=operator_id,
            paid_at=paid_at,
            entry_id=posting.entry.id,
            created_by_id=actor_id,
        )
        self._session.add(payment)
        self._session.flush()
        return payment

    def _status_after_payment(self, invoice: InvoiceModel) -> str:
        if invoice.status == InvoiceStatus.PAID.value:
            return invoice.status
        outstanding = invoice.patient_share - invoice.paid_amount
        if invoice.claim_status != ClaimStatus.PAID.value:
            outstanding += invoice.insurance_share
        if outstanding <= self._settings.tolerances.invoice_balance:
            return InvoiceStatus.PAID.value
        return InvoiceStatus.PARTIALLY_PAID.value

    def _publish(self, payment: PaymentInfo) -> None:
        if self._bus is None:
            return
        self._bus.publish(
            PaymentRecorded(
                payment_id=payment.id,
                hospital_id=payment.hospital_id,
                patient_id=payment.patient_id,
                amount=payment.amount,
                method=payment.method.value,
                invoice_id=payment.invoice_id,
            )
        )

    # =========================================================================
    # Shifts
    # =========================================================================

    def get_shift_report(
        self,
        hospital_id: UUID,
        operator_id: UUID,
        range_start: datetime,
        range_end: datetime,
    ) -> ShiftReport:
        """Totals by payment method for one operator over [start, end)."""
        if range_end <= range_start:
            raise InvalidRangeError(str(range_start), str(range_end))

        rows = self._session.execute(
            select(
                PaymentModel.method,
                func.sum(PaymentModel.amount),
                func.count(PaymentModel.id),
            )
            .where(
                PaymentModel.hospital_id == hospital_id,
                PaymentModel.operator_id == operator_id,
                PaymentModel.paid_at >= range_start,
                PaymentModel.paid_at < range_end,
            )
            .group_by(PaymentModel.method)
            .order_by(PaymentModel.method)
        ).all()

        by_method = tuple(
            MethodTotal(method=method, total_amount=total or ZERO, count=count)
            for method, total, count in rows
        )
        return ShiftReport(
            hospital_id=hospital_id,
            operator_id=operator_id,
            range_start=range_start,
            range_end=range_end,
            by_method=by_method,
            total_amount=sum((m.total_amount for m in by_method), ZERO),
            cash_total=sum(
                (m.total_amount for m in by_method if m.method == PaymentMethod.CASH.value),
                ZERO,
            ),
            payment_count=sum(m.count for m in by_method),
        )

    def close_shift(
        self,
        hospital_id: UUID,
        operator_id: UUID,
        range_start: datetime,
        range_end: datetime,
        actual_cash: Decimal,
        actor_id: UUID,
        note: str | None = None,
    ) -> ShiftClosingInfo:
        """
        Reconcile counted cash against recorded CASH payments.

        difference = actual_cash - system_cash_total.  A non-zero
        difference is posted dated ``range_end`` when over/short posting is
        enabled: over is Dr cash / Cr cash short and over, short the
        reverse.

        Raises:
            InvalidRangeError: range_end not after range_start.
            NonNegativeCashRequiredError: negative actual_cash.
            ShiftOverlapError: overlaps an existing closing of the operator.
            PeriodNotOpenError, ConfigurationError: from the posting.
        """
        if range_end <= range_start:
            raise InvalidRangeError(str(range_start), str(range_end))
        if actual_cash < 0:
            raise NonNegativeCashRequiredError(str(actual_cash))
        if not has_money_precision(actual_cash):
            raise InvalidAmountError("actual_cash", str(actual_cash), "too many fractional digits")

        with LogContext.bind(hospital_id=hospital_id, actor_id=actor_id):
            try:
                # Serializes closings per operator so the overlap check sees
                # every committed closing.
                closing_number = self._sequences.next_value(
                    SequenceService.shift_closing_sequence_name(hospital_id, operator_id)
                )
                overlapping = self._session.execute(
                    select(CashierShiftClosingModel.id)
                    .where(
                        CashierShiftClosingModel.hospital_id == hospital_id,
                        CashierShiftClosingModel.operator_id == operator_id,
                        CashierShiftClosingModel.range_start < range_end,
                        CashierShiftClosingModel.range_end > range_start,
                    )
                    .limit(1)
                ).scalar_one_or_none()
                if overlapping is not None:
                    raise ShiftOverlapError(str(operator_id), str(overlapping))

                system_cash = self._session.execute(
                    select(func.sum(PaymentModel.amount)).where(
                        PaymentModel.hospital_id == hospital_id,
                        PaymentModel.operator_id == operator_id,
                        PaymentModel.method == PaymentMethod.CASH.value,
                        PaymentModel.paid_at >= range_start,
                        PaymentModel.paid_at < range_end,
                    )
                ).scalar() or ZERO
                difference = actual_cash - system_cash

                closing_id = uuid4()
                entry_id = None
                if difference != 0 and self._settings.cashier.post_over_short:
                    entry_id = self._post_over_short(
                        hospital_id, closing_id, operator_id, difference, range_end, actor_id
                    )

                closing = CashierShiftClosingModel(
                    id=closing_id,
                    hospital_id=hospital_id,
                    operator_id=operator_id,
                    range_start=range_start,
                    range_end=range_end,
                    system_cash_total=system_cash,
                    actual_cash_total=actual_cash,
                    difference=difference,
                    note=note,
                    entry_id=entry_id,
                    created_by_id=actor_id,
                )
                self._session.add(closing)
                self._session.flush()
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "shift_closed",
                extra={
                    "closing_id": str(closing_id),
                    "closing_number": closing_number,
                    "operator_id": str(operator_id),
                    "system_cash_total": str(system_cash),
                    "actual_cash_total": str(actual_cash),
                    "difference": str(difference),
                    "entry_id": str(entry_id) if entry_id else None,
                },
            )
            return closing.to_dto()

    def _post_over_short(
        self,
        hospital_id: UUID,
        closing_id: UUID,
        operator_id: UUID,
        difference: Decimal,
        range_end: datetime,
        actor_id: UUID,
    ) -> UUID:
        amount = abs(difference)
        if difference > 0:
            lines = [
                LineSpec.dr(SystemAccountKey.CASH_MAIN, amount, "Cash over"),
                LineSpec.cr(SystemAccountKey.CASH_SHORT_OVER, amount, "Cash over"),
            ]
        else:
            lines = [
                LineSpec.dr(SystemAccountKey.CASH_SHORT_OVER, amount, "Cash short"),
                LineSpec.cr(SystemAccountKey.CASH_MAIN, amount, "Cash short"),
            ]
        posting = self._writer.post_entry(
            hospital_id=hospital_id,
            entry_date=range_end.date(),
            description=f"Cash over/short, shift of operator {operator_id}",
            source_module=SourceModule.CASHIER,
            source_id=closing_id,
            lines=lines,
            actor_id=actor_id,
            purpose=OVER_SHORT_PURPOSE,
        )
        return posting.entry.id

    def list_shifts(
        self,
        hospital_id: UUID,
        operator_id: UUID | None = None,
    ) -> list[ShiftClosingInfo]:
        stmt = select(CashierShiftClosingModel).where(
            CashierShiftClosingModel.hospital_id == hospital_id
        )
        if operator_id is not None:
            stmt = stmt.where(CashierShiftClosingModel.operator_id == operator_id)
        rows = self._session.execute(
            stmt.order_by(CashierShiftClosingModel.range_start.desc())
        ).scalars().all()
        return [row.to_dto() for row in rows]


def _check_amount(amount: Decimal) -> None:
    if not isinstance(amount, Decimal):
        raise InvalidAmountError("amount", repr(amount), "must be a Decimal")
    if amount < 0:
        raise InvalidAmountError("amount", str(amount), "cannot be negative")
    if not has_money_precision(amount):
        raise InvalidAmountError("amount", str(amount), "too many fractional digits")
