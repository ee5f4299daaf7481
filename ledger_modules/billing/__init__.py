"""Invoices, invoice lines, payments and insurance providers."""

from ledger_modules.billing.models import (
    ChargeRequest,
    ClaimStatus,
    InsuranceProviderInfo,
    InvoiceInfo,
    InvoiceLineInfo,
    InvoiceStatus,
    PaymentInfo,
    PaymentMethod,
    ServiceType,
)
from ledger_modules.billing.service import BillingService

__all__ = [
    "BillingService",
    "ChargeRequest",
    "ClaimStatus",
    "InsuranceProviderInfo",
    "InvoiceInfo",
    "InvoiceLineInfo",
    "InvoiceStatus",
    "PaymentInfo",
    "PaymentMethod",
    "ServiceType",
]
