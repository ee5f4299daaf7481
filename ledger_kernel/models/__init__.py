"""Kernel ORM models."""

from ledger_kernel.models.account import (
    Account,
    AccountType,
    NormalBalance,
    SystemAccountKey,
    SystemAccountMapping,
)
from ledger_kernel.models.calendar import FinancialPeriod, FinancialYear, YearStatus
from ledger_kernel.models.journal import JournalEntry, JournalLine, SourceModule

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "SystemAccountKey",
    "SystemAccountMapping",
    "FinancialYear",
    "FinancialPeriod",
    "YearStatus",
    "JournalEntry",
    "JournalLine",
    "SourceModule",
]
