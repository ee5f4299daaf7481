"""
Tests for AgingReportService against a seeded ledger.

Verifies:
- Patient, insurer and supplier aging from persisted documents
- Point-in-time outstanding balances (payments after as_of are ignored)
- Grand total equals the sum of rows, and patient aging net of advances
  equals the patient receivables balance
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_modules.billing.models import ClaimStatus, PaymentMethod
from ledger_modules.reporting.service import (
    UNASSIGNED_INSURER,
    AgingReportService,
    CounterpartyKind,
    outstanding_total,
)

AS_OF = date(2026, 6, 30)


@pytest.fixture
def aging(session):
    return AgingReportService(session)


@pytest.fixture
def patient_ledger(make_invoice, cashier_service, seeded_hospital, test_actor_id):
    """Two patients with invoices of different ages, one payment and one advance."""
    alice, bob = uuid4(), uuid4()
    old = make_invoice(Decimal("300.000"), patient_id=alice, invoice_date=date(2026, 1, 5))
    make_invoice(Decimal("80.000"), patient_id=alice, invoice_date=date(2026, 5, 15))
    make_invoice(Decimal("45.000"), patient_id=bob, invoice_date=date(2026, 6, 20))
    cashier_service.record_payment(
        seeded_hospital, old.id, Decimal("100.000"), PaymentMethod.CASH,
        operator_id=test_actor_id, actor_id=test_actor_id,
        paid_at=datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc),
    )
    cashier_service.record_advance_payment(
        seeded_hospital, bob, Decimal("30.000"), PaymentMethod.CASH,
        operator_id=test_actor_id, actor_id=test_actor_id,
        paid_at=datetime(2026, 6, 21, 10, 0, tzinfo=timezone.utc),
    )
    return str(alice), str(bob)


class TestPatientAging:
    """Patient shares less patient payments."""

    def test_buckets_per_patient(self, aging, patient_ledger, seeded_hospital):
        alice, bob = patient_ledger

        report = aging.get_aging_report(seeded_hospital, AS_OF, CounterpartyKind.PATIENT)

        alice_row = report.row_for(alice)
        assert alice_row.buckets["121+"] == Decimal("200.000")
        assert alice_row.buckets["31-60"] == Decimal("80.000")
        assert alice_row.document_count == 2
        bob_row = report.row_for(bob)
        assert bob_row.buckets["0-30"] == Decimal("45.000")
        assert bob_row.unallocated_credit == Decimal("30.000")
        assert bob_row.net_total == Decimal("15.000")
        assert report.grand_total == Decimal("325.000")
        assert report.grand_total == sum((r.total for r in report.rows), Decimal("0"))

    def test_net_equals_receivable_balance(
        self, session, aging, patient_ledger, seeded_hospital
    ):
        report = aging.get_aging_report(seeded_hospital, AS_OF, "PATIENT")

        account = AccountRegistry(session).resolve(
            seeded_hospital, SystemAccountKey.RECEIVABLE_PATIENTS
        )
        balance = LedgerSelector(session).account_balance(account.id, AS_OF)
        assert outstanding_total(report) == balance == Decimal("295.000")

    def test_point_in_time(self, aging, patient_ledger, seeded_hospital):
        alice, _ = patient_ledger

        report = aging.get_aging_report(seeded_hospital, date(2026, 2, 28), "PATIENT")

        # Before the March payment and before the later invoices existed.
        assert report.row_for(alice).total == Decimal("300.000")
        assert report.row_for(alice).buckets["31-60"] == Decimal("300.000")
        assert report.total_unallocated_credit == Decimal("0.000")

    def test_payment_on_as_of_day_counts(
        self, aging, make_invoice, cashier_service, seeded_hospital, test_actor_id
    ):
        invoice = make_invoice(Decimal("10.000"), invoice_date=date(2026, 6, 1))
        cashier_service.record_payment(
            seeded_hospital, invoice.id, Decimal("10.000"), PaymentMethod.CARD,
            operator_id=test_actor_id, actor_id=test_actor_id,
            paid_at=datetime(2026, 6, 30, 23, 59, tzinfo=timezone.utc),
        )

        assert aging.get_aging_report(seeded_hospital, AS_OF).rows == ()
        assert aging.get_aging_report(seeded_hospital, date(2026, 6, 29)).grand_total == (
            Decimal("10.000")
        )

    def test_cancelled_and_draft_excluded(
        self, aging, make_invoice, billing_service, seeded_hospital, test_actor_id
    ):
        cancelled = make_invoice(Decimal("10.000"), invoice_date=date(2026, 6, 1))
        billing_service.cancel_invoice(cancelled.id, test_actor_id)
        make_invoice(Decimal("20.000"), invoice_date=date(2026, 6, 1), issue=False)

        assert aging.get_aging_report(seeded_hospital, AS_OF).grand_total == Decimal("0.000")


class TestInsurerAging:
    """Insurance shares until the claim is settled."""

    def test_open_claims_by_provider(
        self, aging, make_invoice, insured_plan, coverage_service, seeded_hospital,
        test_actor_id,
    ):
        provider, plan_id = insured_plan
        orphan_plan = coverage_service.create_plan(
            seeded_hospital, "Employer scheme", Decimal("0"), test_actor_id
        )
        make_invoice(Decimal("100.000"), plan_id=plan_id, invoice_date=date(2026, 4, 1))
        make_invoice(Decimal("50.000"), plan_id=UUID(orphan_plan.id),
                     invoice_date=date(2026, 6, 10))
        make_invoice(Decimal("70.000"), invoice_date=date(2026, 6, 10))

        report = aging.get_aging_report(seeded_hospital, AS_OF, CounterpartyKind.INSURER)

        row = report.row_for(str(provider.id))
        assert row.counterparty_name == "National Health Mutual"
        assert row.buckets["61-90"] == Decimal("80.000")
        assert report.row_for(UNASSIGNED_INSURER).total == Decimal("50.000")
        assert report.grand_total == Decimal("130.000")

    def test_settled_claim_drops_out_from_settlement_date(
        self, aging, make_invoice, insured_plan, claims_service, seeded_hospital,
        test_actor_id,
    ):
        _, plan_id = insured_plan
        invoice = make_invoice(Decimal("100.000"), plan_id=plan_id,
                               invoice_date=date(2026, 6, 1))
        claims_service.settle_claims(
            seeded_hospital, [invoice.id], ClaimStatus.PAID, test_actor_id,
            settlement_date=date(2026, 6, 25),
        )

        before = aging.get_aging_report(seeded_hospital, date(2026, 6, 24), "INSURER")
        after = aging.get_aging_report(seeded_hospital, AS_OF, "INSURER")

        assert before.grand_total == Decimal("80.000")
        assert after.grand_total == Decimal("0.000")


class TestSupplierAging:
    """Purchase invoices less supplier payments."""

    @pytest.fixture
    def supplier(self, purchasing_service, seeded_hospital, test_actor_id):
        supplier = purchasing_service.create_supplier(seeded_hospital, "Gulf Pharma",
                                                      test_actor_id)
        invoice = purchasing_service.record_purchase_invoice(
            seeded_hospital, supplier.id, "GP-1", Decimal("1000.000"), test_actor_id,
            invoice_date=date(2026, 1, 10),
        )
        purchasing_service.record_supplier_payment(
            seeded_hospital, supplier.id, Decimal("400.000"), PaymentMethod.TRANSFER,
            test_actor_id, purchase_invoice_id=invoice.id, paid_on=date(2026, 3, 1),
        )
        purchasing_service.record_supplier_payment(
            seeded_hospital, supplier.id, Decimal("50.000"), PaymentMethod.CASH,
            test_actor_id, paid_on=date(2026, 3, 15),
        )
        return supplier

    def test_before_payment(self, aging, supplier, seeded_hospital):
        report = aging.get_aging_report(seeded_hospital, date(2026, 2, 28), "SUPPLIER")

        row = report.row_for(str(supplier.id))
        assert row.counterparty_name == "Gulf Pharma"
        assert row.buckets["31-60"] == Decimal("1000.000")
        assert report.total_unallocated_credit == Decimal("0.000")

    def test_after_payments(self, aging, supplier, seeded_hospital):
        report = aging.get_aging_report(seeded_hospital, date(2026, 3, 31), "SUPPLIER")

        row = report.row_for(str(supplier.id))
        assert row.buckets["61-90"] == Decimal("600.000")
        assert row.unallocated_credit == Decimal("50.000")
        assert outstanding_total(report) == Decimal("550.000")
