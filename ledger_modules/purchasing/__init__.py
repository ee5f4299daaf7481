"""Supplier purchase invoices and payments (payables)."""

from ledger_modules.purchasing.models import (
    PurchaseInvoiceInfo,
    PurchaseInvoiceStatus,
    SupplierInfo,
    SupplierPaymentInfo,
)
from ledger_modules.purchasing.service import PurchasingService

__all__ = [
    "PurchaseInvoiceInfo",
    "PurchaseInvoiceStatus",
    "PurchasingService",
    "SupplierInfo",
    "SupplierPaymentInfo",
]
