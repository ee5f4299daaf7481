"""Coverage plans and prospective charge splits."""

from ledger_modules.coverage.service import CoverageService

__all__ = ["CoverageService"]
