"""
Claims Module Service - insurer claim lifecycle and remittance settlement.

Thin glue layer that:
1. Locks the requested invoices and filters out the ineligible ones
2. Validates every claim transition before touching anything
3. For a PAID remittance, calls JournalWriter for one consolidated entry
   (Dr bank / Cr insurer receivables) and marks the invoices settled

The whole batch is one transaction: any failure leaves every invoice and
the ledger untouched.

Usage:
    service = ClaimSettlementService(session, clock=clock)
    result = service.settle_claims(
        hospital_id, [invoice.id], ClaimStatus.PAID, actor_id,
    )
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    InvalidClaimTransitionError,
    InvoiceNotFoundError,
    NoEligibleInvoicesError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_modules.billing.models import ClaimStatus, InvoiceInfo, InvoiceStatus
from ledger_modules.billing.orm import InvoiceModel
from ledger_modules.billing.service import insurer_receivable
from ledger_modules.claims.models import ClaimSettlementResult, can_transition

logger = get_logger("modules.claims.service")

CLAIM_SETTLEMENT_PURPOSE = "claim-settlement"

_INELIGIBLE_STATUSES = frozenset({InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value})


def settlement_source_id(invoice_ids: Sequence[UUID]) -> str:
    """Deterministic id for a batch: the same invoices always give the same id."""
    joined = ",".join(sorted(str(i) for i in invoice_ids))
    return "claims-" + hashlib.sha256(joined.encode("utf-8")).hexdigest()[:32]


class ClaimSettlementService:
    """
    Moves insurer claims through their lifecycle.

    Transaction boundary: settle_claims commits on success and rolls back
    on failure.  list_claims never writes.
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

    def settle_claims(
        self,
        hospital_id: UUID,
        invoice_ids: Sequence[UUID],
        target_status: ClaimStatus | str,
        actor_id: UUID,
        settlement_date: date | None = None,
    ) -> ClaimSettlementResult:
        """
        Apply ``target_status`` to the claims of ``invoice_ids``.

        PAID posts one consolidated entry dated ``settlement_date`` (today by
        default) and settles each invoice.  Other targets change the claim
        status only.

        Raises:
            InvoiceNotFoundError: an id is unknown or belongs to another
                hospital.
            NoEligibleInvoicesError: nothing left after filtering.
            InvalidClaimTransitionError: any invoice cannot move to the
                target; the whole batch is rejected.
            PeriodNotOpenError, ConfigurationError: from the posting.
        """
        target = ClaimStatus(target_status)
        requested = list(dict.fromkeys(invoice_ids))

        with LogContext.bind(hospital_id=hospital_id, actor_id=actor_id):
            try:
                invoices = self._lock_invoices(hospital_id, requested)
                eligible = [inv for inv in invoices if _is_eligible(inv)]
                ineligible = tuple(inv.id for inv in invoices if not _is_eligible(inv))
                if not eligible:
                    raise NoEligibleInvoicesError(len(requested))

                for invoice in eligible:
                    if not can_transition(ClaimStatus(invoice.claim_status), target):
                        raise InvalidClaimTransitionError(
                            str(invoice.id), invoice.claim_status, target.value
                        )

                pending = [inv for inv in eligible if inv.claim_status != target.value]
                skipped = tuple(inv.id for inv in eligible if inv.claim_status == target.value)

                if target == ClaimStatus.PAID:
                    result = self._settle_paid(
                        hospital_id,
                        pending,
                        skipped,
                        ineligible,
                        eligible,
                        actor_id,
                        settlement_date or self._clock.today(),
                    )
                else:
                    for invoice in pending:
                        invoice.claim_status = target.value
                        invoice.updated_by_id = actor_id
                    self._session.flush()
                    result = ClaimSettlementResult(
                        target_status=target,
                        updated=tuple(inv.id for inv in pending),
                        skipped=skipped,
                        ineligible=ineligible,
                    )

                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "claims_settled" if target == ClaimStatus.PAID else "claims_status_updated",
                extra={
                    "target_status": target.value,
                    "updated_count": len(result.updated),
                    "skipped_count": len(result.skipped),
                    "ineligible_count": len(result.ineligible),
                    "amount": str(result.total_amount),
                    "entry_id": str(result.entry_id) if result.entry_id else None,
                    "replayed": result.replayed,
                },
            )
            return result

    def _settle_paid(
        self,
        hospital_id: UUID,
        pending: list[InvoiceModel],
        skipped: tuple[UUID, ...],
        ineligible: tuple[UUID, ...],
        eligible: list[InvoiceModel],
        actor_id: UUID,
        settlement_date: date,
    ) -> ClaimSettlementResult:
        if not pending:
            previous = next(
                (inv.settlement_entry_id for inv in eligible if inv.settlement_entry_id),
                None,
            )
            entry = (
                JournalSelector(self._session).get_entry(previous)
                if previous is not None
                else None
            )
            return ClaimSettlementResult(
                target_status=ClaimStatus.PAID,
                skipped=skipped,
                ineligible=ineligible,
                entry=entry,
                replayed=True,
            )

        by_receivable: OrderedDict[UUID | SystemAccountKey, Decimal] = OrderedDict()
        for invoice in pending:
            account = insurer_receivable(invoice.insurance_provider)
            by_receivable[account] = by_receivable.get(account, ZERO) + invoice.insurance_share
        total = sum(by_receivable.values(), ZERO)

        lines = [LineSpec.dr(SystemAccountKey.BANK_MAIN, total, "Insurer remittance")]
        lines.extend(
            LineSpec.cr(account, amount, "Insurer receivable settled")
            for account, amount in by_receivable.items()
        )

        posting = self._writer.post_entry(
            hospital_id=hospital_id,
            entry_date=settlement_date,
            description=f"Insurance claims settlement ({len(pending)} invoices)",
            source_module=SourceModule.BILLING,
            source_id=settlement_source_id([inv.id for inv in pending]),
            lines=lines,
            actor_id=actor_id,
            purpose=CLAIM_SETTLEMENT_PURPOSE,
        )

        tolerance = self._settings.tolerances.claim_settlement
        for invoice in pending:
            if invoice.paid_amount >= invoice.patient_share - tolerance:
                invoice.status = InvoiceStatus.PAID.value
            else:
                invoice.status = InvoiceStatus.PARTIALLY_PAID.value
            invoice.claim_status = ClaimStatus.PAID.value
            invoice.claim_settled_on = settlement_date
            invoice.settlement_entry_id = posting.entry.id
            invoice.updated_by_id = actor_id
        self._session.flush()

        return ClaimSettlementResult(
            target_status=ClaimStatus.PAID,
            updated=tuple(inv.id for inv in pending),
            skipped=skipped,
            ineligible=ineligible,
            total_amount=total,
            entry=posting.entry,
            replayed=not posting.created,
            receivable_totals={
                str(getattr(account, "value", account)): amount
                for account, amount in by_receivable.items()
            },
        )

    def _lock_invoices(self, hospital_id: UUID, invoice_ids: list[UUID]) -> list[InvoiceModel]:
        invoices = self._session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.id.in_(invoice_ids))
            .order_by(InvoiceModel.id)
            .with_for_update(of=InvoiceModel)
            .execution_options(populate_existing=True)
        ).scalars().all()
        found = {inv.id: inv for inv in invoices if inv.hospital_id == hospital_id}
        for invoice_id in invoice_ids:
            if invoice_id not in found:
                raise InvoiceNotFoundError(str(invoice_id))
        return [found[i] for i in invoice_ids]

    # =========================================================================
    # Queries
    # =========================================================================

    def list_claims(
        self,
        hospital_id: UUID,
        provider_id: UUID | None = None,
        status: ClaimStatus | str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[InvoiceInfo]:
        """
        Invoices carrying an insurance share, excluding DRAFT and CANCELLED.

        ``status=None`` lists open claims (PENDING, or never opened).
        """
        stmt = select(InvoiceModel).where(
            InvoiceModel.hospital_id == hospital_id,
            InvoiceModel.insurance_share > 0,
            InvoiceModel.status.not_in(list(_INELIGIBLE_STATUSES)),
        )
        if provider_id is not None:
            stmt = stmt.where(InvoiceModel.insurance_provider_id == provider_id)
        status = ClaimStatus(status) if status is not None else ClaimStatus.PENDING
        if status == ClaimStatus.PENDING:
            stmt = stmt.where(
                or_(
                    InvoiceModel.claim_status == ClaimStatus.PENDING.value,
                    InvoiceModel.claim_status == ClaimStatus.NONE.value,
                )
            )
        else:
            stmt = stmt.where(InvoiceModel.claim_status == status.value)
        if date_from is not None:
            stmt = stmt.where(InvoiceModel.invoice_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(InvoiceModel.invoice_date <= date_to)
        rows = self._session.execute(
            stmt.order_by(InvoiceModel.invoice_date.desc(), InvoiceModel.invoice_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]


def _is_eligible(invoice: InvoiceModel) -> bool:
    return invoice.insurance_share > 0 and invoice.status not in _INELIGIBLE_STATUSES
