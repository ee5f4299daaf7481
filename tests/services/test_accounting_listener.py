"""
Tests for AccountingListener: events from billing, pharmacy and claims turn
into ledger postings through the EventBus.

The listener opens its own session per event.  The test session commits
before publishing so both sessions see the same committed state.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import InvoiceNotFoundError, PeriodNotOpenError
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_modules.billing.models import ChargeRequest, ClaimStatus, InvoiceStatus, ServiceType
from ledger_modules.billing.service import BillingService
from ledger_modules.inventory.service import COGS_PURPOSE
from ledger_services.accounting_listener import AccountingListener
from ledger_services.events import (
    ClaimsSettlementRequested,
    DispenseCompleted,
    EventBus,
    InvoiceIssued,
)


@pytest.fixture
def bus(session_factory, deterministic_clock):
    event_bus = EventBus()
    AccountingListener(session_factory, clock=deterministic_clock).register(event_bus)
    return event_bus


@pytest.fixture
def evented_billing(session, deterministic_clock, bus):
    return BillingService(session, clock=deterministic_clock, event_bus=bus)


class TestRegistration:
    def test_subscribes_posting_events(self, bus):
        assert len(bus.handlers_for(InvoiceIssued)) == 1
        assert len(bus.handlers_for(DispenseCompleted)) == 1
        assert len(bus.handlers_for(ClaimsSettlementRequested)) == 1


class TestInvoiceIssued:
    """Issuing through the bus posts via the listener."""

    def test_issue_posts_through_listener(
        self, session, evented_billing, seeded_hospital, test_actor_id
    ):
        draft = evented_billing.create_invoice(
            seeded_hospital, uuid4(),
            [ChargeRequest(ServiceType.LAB, Decimal("35.000"), "Lipid panel")],
            test_actor_id,
        )

        issued = evented_billing.issue_invoice(draft.id, test_actor_id)

        assert issued.status == InvoiceStatus.ISSUED
        entries = JournalSelector(session).entries_for_source(
            seeded_hospital, SourceModule.BILLING, draft.id
        )
        assert len(entries) == 1
        assert {line.account_code for line in entries[0].lines} == {"120100", "400300"}

    def test_redelivery_posts_once(
        self, session, evented_billing, bus, seeded_hospital, test_actor_id
    ):
        draft = evented_billing.create_invoice(
            seeded_hospital, uuid4(),
            [ChargeRequest(ServiceType.CONSULTATION, Decimal("20.000"), "Visit")],
            test_actor_id,
        )
        issued = evented_billing.issue_invoice(draft.id, test_actor_id)
        session.commit()

        bus.publish(
            InvoiceIssued(
                invoice_id=issued.id,
                hospital_id=seeded_hospital,
                actor_id=test_actor_id,
                total_amount=issued.total_amount,
                patient_share=issued.patient_share,
                insurance_share=issued.insurance_share,
            )
        )

        assert len(
            JournalSelector(session).entries_for_source(
                seeded_hospital, SourceModule.BILLING, issued.id
            )
        ) == 1


class TestDispenseCompleted:
    def test_dispense_posts_cogs(self, session, bus, seeded_hospital, test_actor_id):
        dispense_id = uuid4()
        session.commit()

        assert bus.publish(
            DispenseCompleted(
                dispense_id=dispense_id,
                hospital_id=seeded_hospital,
                actor_id=test_actor_id,
                total_cost=Decimal("18.250"),
                category="SUPPLIES",
            )
        ) == 1

        entries = JournalSelector(session).entries_for_source(
            seeded_hospital, SourceModule.INVENTORY, dispense_id
        )
        assert [e.purpose for e in entries] == [COGS_PURPOSE]
        assert entries[0].total_debit == Decimal("18.250")

    def test_posting_failure_reaches_publisher(
        self, session, bus, seeded_hospital, test_actor_id, journal_row_counts, captured_logs
    ):
        session.commit()

        with pytest.raises(PeriodNotOpenError):
            bus.publish(
                DispenseCompleted(
                    dispense_id=uuid4(),
                    hospital_id=seeded_hospital,
                    actor_id=test_actor_id,
                    total_cost=Decimal("5.000"),
                    dispensed_on=date(2027, 5, 1),
                )
            )

        assert journal_row_counts() == (0, 0)
        failures = [r for r in captured_logs() if r["message"] == "event_handler_failed"]
        assert failures[0]["exc_code"] == "PERIOD_NOT_OPEN"


class TestClaimsSettlementRequested:
    def test_remittance_settles_claims(
        self, session, bus, make_invoice, insured_plan, billing_service, seeded_hospital,
        test_actor_id,
    ):
        _, plan_id = insured_plan
        invoice = make_invoice(Decimal("100.000"), plan_id=plan_id)
        session.commit()

        bus.publish(
            ClaimsSettlementRequested(
                hospital_id=seeded_hospital,
                invoice_ids=(invoice.id,),
                target_status="PAID",
                actor_id=test_actor_id,
            )
        )

        settled = billing_service.get_invoice(invoice.id)
        assert settled.claim_status == ClaimStatus.PAID
        assert settled.settlement_entry_id is not None

    def test_unknown_invoice_propagates(self, session, bus, seeded_hospital, test_actor_id):
        session.commit()

        with pytest.raises(InvoiceNotFoundError):
            bus.publish(
                ClaimsSettlementRequested(
                    hospital_id=seeded_hospital,
                    invoice_ids=(uuid4(),),
                    target_status="PAID",
                    actor_id=test_actor_id,
                )
            )
