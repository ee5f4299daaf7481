"""Patient collections and cashier shift reconciliation."""

from ledger_modules.cashier.models import MethodTotal, ShiftClosingInfo, ShiftReport
from ledger_modules.cashier.service import CashierService

__all__ = ["CashierService", "MethodTotal", "ShiftClosingInfo", "ShiftReport"]
