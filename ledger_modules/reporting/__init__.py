"""Counterparty aging reports."""

from ledger_modules.reporting.service import AgingReportService, CounterpartyKind, outstanding_total

__all__ = ["AgingReportService", "CounterpartyKind", "outstanding_total"]
