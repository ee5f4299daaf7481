"""
ledger_services.events -- in-process domain events and their dispatcher.

Responsibility:
    Defines the events that collaborators publish (InvoiceIssued,
    DispenseCompleted, ClaimsSettlementRequested, PaymentRecorded) and the
    EventBus that hands each published event to its subscribers.

Architecture position:
    Services.  Events are plain frozen dataclasses with no ORM or session
    references, so publishers and subscribers share nothing but ids and
    amounts.

Invariants enforced:
    - Dispatch is synchronous and ordered: subscribers run in
      subscription order, on the publisher's thread, before publish()
      returns.
    - A handler exception is logged with the event context and re-raised
      to the publisher; later handlers for that event do not run.

Non-goals:
    - No persistence, retries or outbox.  A publisher that must not lose
      an event commits its own state first and publishes after.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("services.events")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvoiceIssued:
    """An invoice moved from DRAFT to ISSUED and must reach the ledger."""

    invoice_id: UUID
    hospital_id: UUID
    actor_id: UUID
    total_amount: Decimal
    patient_share: Decimal
    insurance_share: Decimal
    insurance_provider_id: UUID | None = None


@dataclass(frozen=True)
class DispenseCompleted:
    """
    Stock left the store for a patient; its cost moves to COGS.

    ``category`` is ``"PHARMACY"`` for drugs and ``"SUPPLIES"`` for
    consumables.
    """

    dispense_id: UUID
    hospital_id: UUID
    actor_id: UUID
    total_cost: Decimal
    category: str = "PHARMACY"
    dispensed_on: date | None = None


@dataclass(frozen=True)
class ClaimsSettlementRequested:
    """An insurer remittance (or a claim status change) for a batch of invoices."""

    hospital_id: UUID
    invoice_ids: tuple[UUID, ...]
    target_status: str
    actor_id: UUID
    settlement_date: date | None = None


@dataclass(frozen=True)
class PaymentRecorded:
    """A patient payment was recorded.  Outbound notification only."""

    payment_id: UUID
    hospital_id: UUID
    patient_id: UUID
    amount: Decimal
    method: str
    invoice_id: UUID | None = None


Handler = Callable[[Any], None]


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class EventBus:
    """
    Synchronous publish/subscribe keyed by event class.

    Contract:
        subscribe(InvoiceIssued, handler) registers ``handler`` for exact
        instances of InvoiceIssued.  publish(event) calls every handler
        registered for ``type(event)`` in registration order and returns
        the number of handlers invoked.

    Guarantees:
        - Publishing an event nobody subscribed to is a no-op (returns 0).
        - Registering the same handler twice for one type is ignored.

    Usage:
        bus = EventBus()
        AccountingListener(session_factory, clock, settings).register(bus)
        bus.publish(InvoiceIssued(...))
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}

    def subscribe(self, event_type: type, handler: Handler) -> None:
        """Register ``handler`` for events of exactly ``event_type``."""
        if not callable(handler):
            raise TypeError(f"handler for {event_type.__name__} is not callable")
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: type) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event_type, ()))

    def publish(self, event: Any) -> int:
        """
        Deliver ``event`` to its subscribers.

        Raises:
            Whatever a handler raises, after logging it.
        """
        event_name = type(event).__name__
        handlers = self.handlers_for(type(event))
        logger.debug(
            "event_published",
            extra={"event_type": event_name, "handler_count": len(handlers)},
        )
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.error(
                    "event_handler_failed",
                    extra={
                        "event_type": event_name,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                    },
                    exc_info=True,
                )
                raise
        return len(handlers)
