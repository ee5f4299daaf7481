"""Read-only query selectors over the journal."""

from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import (
    LedgerLine,
    LedgerReport,
    LedgerSelector,
    TrialBalance,
    TrialBalanceRow,
)

__all__ = [
    "JournalSelector",
    "LedgerLine",
    "LedgerReport",
    "LedgerSelector",
    "TrialBalance",
    "TrialBalanceRow",
]
