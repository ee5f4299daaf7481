"""
ledger_services.accounting_listener -- turns domain events into postings.

Responsibility:
    Subscribes to the EventBus and, for each event that has financial
    effect, calls the owning module service in a session of its own:

        InvoiceIssued              -> BillingService.record_invoice_entry
        DispenseCompleted          -> InventoryPostingService.record_dispense_cost
        ClaimsSettlementRequested  -> ClaimSettlementService.settle_claims

Architecture position:
    Services.  Imports module services; modules never import this file.

Invariants enforced:
    - One session per handled event, always closed.  A failure in one
      event's posting leaves nothing behind from that event.
    - Delivering the same event twice posts once (the module services are
      idempotent per source document).

Failure modes:
    - Any LedgerError from the module service propagates to the publisher
      after being logged by the EventBus.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryInfo
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.billing.service import BillingService
from ledger_modules.claims.models import ClaimSettlementResult
from ledger_modules.claims.service import ClaimSettlementService
from ledger_modules.inventory.service import InventoryPostingService
from ledger_services.events import (
    ClaimsSettlementRequested,
    DispenseCompleted,
    EventBus,
    InvoiceIssued,
)

logger = get_logger("services.accounting_listener")


class AccountingListener:
    """
    Event subscriber that records the ledger side of operational events.

    Usage:
        bus = EventBus()
        AccountingListener(get_session_factory()).register(bus)
        BillingService(session, event_bus=bus).issue_invoice(invoice_id, actor_id)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()

    def register(self, bus: EventBus) -> None:
        bus.subscribe(InvoiceIssued, self.on_invoice_issued)
        bus.subscribe(DispenseCompleted, self.on_dispense_completed)
        bus.subscribe(ClaimsSettlementRequested, self.on_claims_settlement_requested)
        logger.info("accounting_listener_registered")

    def on_invoice_issued(self, event: InvoiceIssued) -> EntryInfo | None:
        with self._session() as session, LogContext.bind(
            hospital_id=str(event.hospital_id), actor_id=str(event.actor_id)
        ):
            service = BillingService(session, clock=self._clock, settings=self._settings)
            entry = service.record_invoice_entry(event.invoice_id, event.actor_id)
            logger.info(
                "invoice_event_handled",
                extra={
                    "invoice_id": str(event.invoice_id),
                    "entry_id": str(entry.id) if entry else None,
                },
            )
            return entry

    def on_dispense_completed(self, event: DispenseCompleted) -> EntryInfo | None:
        with self._session() as session, LogContext.bind(
            hospital_id=str(event.hospital_id), actor_id=str(event.actor_id)
        ):
            service = InventoryPostingService(session, clock=self._clock)
            entry = service.record_dispense_cost(
                hospital_id=event.hospital_id,
                dispense_id=event.dispense_id,
                total_cost=event.total_cost,
                actor_id=event.actor_id,
                category=event.category,
                dispensed_on=event.dispensed_on,
            )
            logger.info(
                "dispense_event_handled",
                extra={
                    "dispense_id": str(event.dispense_id),
                    "entry_id": str(entry.id) if entry else None,
                },
            )
            return entry

    def on_claims_settlement_requested(
        self, event: ClaimsSettlementRequested
    ) -> ClaimSettlementResult:
        with self._session() as session, LogContext.bind(
            hospital_id=str(event.hospital_id), actor_id=str(event.actor_id)
        ):
            service = ClaimSettlementService(session, clock=self._clock, settings=self._settings)
            result = service.settle_claims(
                hospital_id=event.hospital_id,
                invoice_ids=list(event.invoice_ids),
                target_status=event.target_status,
                actor_id=event.actor_id,
                settlement_date=event.settlement_date,
            )
            logger.info(
                "claims_event_handled",
                extra={
                    "target_status": result.target_status.value,
                    "invoice_count": result.count,
                    "replayed": result.replayed,
                },
            )
            return result

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()
