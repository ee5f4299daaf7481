"""
Tests for PurchasingService: supplier invoices and supplier payments.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    InvalidAmountError,
    OverpaymentError,
    PurchaseInvoiceNotFoundError,
    SupplierNotFoundError,
)
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_modules.billing.models import PaymentMethod
from ledger_modules.inventory.service import DispenseCategory
from ledger_modules.purchasing.models import PurchaseInvoiceStatus


def _balance(session, hospital_id, key):
    account = AccountRegistry(session).resolve(hospital_id, key)
    return LedgerSelector(session).account_balance(account.id)


@pytest.fixture
def supplier(purchasing_service, seeded_hospital, test_actor_id):
    return purchasing_service.create_supplier(seeded_hospital, "Gulf Pharma", test_actor_id)


@pytest.fixture
def purchase_invoice(purchasing_service, supplier, seeded_hospital, test_actor_id):
    return purchasing_service.record_purchase_invoice(
        seeded_hospital, supplier.id, "GP-1001", Decimal("1000.000"), test_actor_id,
        invoice_date=date(2026, 1, 10),
    )


class TestPurchaseInvoice:
    """Supplier invoices land in inventory and payables."""

    def test_posts_inventory_and_payable(self, session, purchase_invoice, seeded_hospital):
        assert purchase_invoice.status == PurchaseInvoiceStatus.POSTED
        assert purchase_invoice.remaining == Decimal("1000.000")

        entry = JournalSelector(session).get_entry(purchase_invoice.entry_id)
        assert entry.source_module == SourceModule.INVENTORY.value
        assert entry.entry_date == date(2026, 1, 10)
        assert _balance(
            session, seeded_hospital, SystemAccountKey.INVENTORY_DRUGS
        ) == Decimal("1000.000")
        assert _balance(
            session, seeded_hospital, SystemAccountKey.PAYABLE_SUPPLIERS
        ) == Decimal("1000.000")

    def test_supplies_category(
        self, session, purchasing_service, supplier, seeded_hospital, test_actor_id
    ):
        purchasing_service.record_purchase_invoice(
            seeded_hospital, supplier.id, "GP-2001", Decimal("75.500"), test_actor_id,
            category=DispenseCategory.SUPPLIES,
        )

        assert _balance(
            session, seeded_hospital, SystemAccountKey.INVENTORY_SUPPLIES
        ) == Decimal("75.500")

    def test_same_number_recorded_once(
        self, purchasing_service, purchase_invoice, supplier, seeded_hospital, test_actor_id,
        journal_row_counts,
    ):
        before = journal_row_counts()

        again = purchasing_service.record_purchase_invoice(
            seeded_hospital, supplier.id, "GP-1001", Decimal("1000.000"), test_actor_id,
        )

        assert again.id == purchase_invoice.id
        assert journal_row_counts() == before

    def test_unknown_supplier(self, purchasing_service, seeded_hospital, test_actor_id):
        with pytest.raises(SupplierNotFoundError):
            purchasing_service.record_purchase_invoice(
                seeded_hospital, uuid4(), "X-1", Decimal("1.000"), test_actor_id
            )

    def test_supplier_of_other_hospital(
        self, purchasing_service, supplier, test_actor_id
    ):
        with pytest.raises(SupplierNotFoundError):
            purchasing_service.record_purchase_invoice(
                uuid4(), supplier.id, "X-1", Decimal("1.000"), test_actor_id
            )

    def test_zero_total_rejected(self, purchasing_service, supplier, seeded_hospital,
                                 test_actor_id):
        with pytest.raises(InvalidAmountError):
            purchasing_service.record_purchase_invoice(
                seeded_hospital, supplier.id, "X-1", Decimal("0.000"), test_actor_id
            )

    def test_list_by_supplier(
        self, purchasing_service, purchase_invoice, supplier, seeded_hospital, test_actor_id
    ):
        other = purchasing_service.create_supplier(seeded_hospital, "MedSupply", test_actor_id)
        purchasing_service.record_purchase_invoice(
            seeded_hospital, other.id, "MS-1", Decimal("5.000"), test_actor_id
        )

        listed = purchasing_service.list_purchase_invoices(seeded_hospital, supplier.id)

        assert [i.invoice_number for i in listed] == ["GP-1001"]
        assert len(purchasing_service.list_purchase_invoices(seeded_hospital)) == 2


class TestSupplierPayment:
    """Payments reduce payables."""

    def test_partial_then_full_payment(
        self, session, purchasing_service, purchase_invoice, supplier, seeded_hospital,
        test_actor_id,
    ):
        purchasing_service.record_supplier_payment(
            seeded_hospital, supplier.id, Decimal("400.000"), PaymentMethod.TRANSFER,
            test_actor_id, purchase_invoice_id=purchase_invoice.id,
        )
        partial = purchasing_service.list_purchase_invoices(seeded_hospital)[0]
        assert partial.status == PurchaseInvoiceStatus.PARTIALLY_PAID
        assert partial.remaining == Decimal("600.000")

        purchasing_service.record_supplier_payment(
            seeded_hospital, supplier.id, Decimal("600.000"), PaymentMethod.TRANSFER,
            test_actor_id, purchase_invoice_id=purchase_invoice.id,
        )

        assert purchasing_service.list_purchase_invoices(seeded_hospital)[0].status == (
            PurchaseInvoiceStatus.PAID
        )
        assert _balance(
            session, seeded_hospital, SystemAccountKey.PAYABLE_SUPPLIERS
        ) == Decimal("0.000")
        assert _balance(session, seeded_hospital, SystemAccountKey.BANK_MAIN) == Decimal(
            "-1000.000"
        )

    def test_cash_payment_on_account(
        self, session, purchasing_service, supplier, seeded_hospital, test_actor_id
    ):
        payment = purchasing_service.record_supplier_payment(
            seeded_hospital, supplier.id, Decimal("50.000"), PaymentMethod.CASH, test_actor_id,
        )

        assert payment.is_unallocated
        assert _balance(session, seeded_hospital, SystemAccountKey.CASH_MAIN) == Decimal(
            "-50.000"
        )

    def test_overpayment_rejected(
        self, purchasing_service, purchase_invoice, supplier, seeded_hospital, test_actor_id,
        journal_row_counts,
    ):
        before = journal_row_counts()

        with pytest.raises(OverpaymentError):
            purchasing_service.record_supplier_payment(
                seeded_hospital, supplier.id, Decimal("1000.010"), PaymentMethod.TRANSFER,
                test_actor_id, purchase_invoice_id=purchase_invoice.id,
            )

        assert journal_row_counts() == before

    def test_invoice_of_other_supplier(
        self, purchasing_service, purchase_invoice, seeded_hospital, test_actor_id
    ):
        other = purchasing_service.create_supplier(seeded_hospital, "MedSupply", test_actor_id)

        with pytest.raises(PurchaseInvoiceNotFoundError):
            purchasing_service.record_supplier_payment(
                seeded_hospital, other.id, Decimal("1.000"), PaymentMethod.CASH,
                test_actor_id, purchase_invoice_id=purchase_invoice.id,
            )
