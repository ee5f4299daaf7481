"""
ledger_services.setup -- per-hospital bootstrap.

Seeds the configured chart of accounts (with its system-key bindings) and
opens a financial year split into monthly periods.  Both operations are
safe to repeat: seeding skips existing codes, and a second year over the
same dates is rejected with PeriodOverlapError.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_settings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PeriodInfo
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.calendar_service import CalendarService

logger = get_logger("services.setup")


class HospitalSetupService:
    """Transaction boundary: commits on success, rolls back on failure."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._settings = settings or get_settings()
        self._registry = AccountRegistry(session)
        self._calendar = CalendarService(session, clock or SystemClock())

    def seed_default_chart(self, hospital_id: UUID, actor_id: UUID) -> int:
        """Create the configured default chart; returns accounts created."""
        try:
            created = self._registry.seed_chart(
                hospital_id, self._settings.default_chart, actor_id
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "default_chart_seeded",
            extra={"hospital_id": str(hospital_id), "accounts_created": created},
        )
        return created

    def open_financial_year(
        self,
        hospital_id: UUID,
        code: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> list[PeriodInfo]:
        try:
            year = self._calendar.create_year(hospital_id, code, start_date, end_date, actor_id)
            periods = self._calendar.generate_monthly_periods(year.id, actor_id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "financial_year_opened",
            extra={
                "hospital_id": str(hospital_id),
                "year_code": code,
                "period_count": len(periods),
            },
        )
        return periods
