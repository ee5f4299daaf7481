"""
CalendarService -- financial years, periods, and the posting date gate.

Responsibility:
    Creates financial years and their monthly periods, resolves the open
    period covering a posting date, and closes/reopens periods and years in
    strict date order.

Architecture position:
    Kernel > Services.  resolve_open_period() is called by JournalWriter
    and ReversalService inside the posting transaction; lifecycle methods
    are administrative.

Invariants enforced:
    - No posting outside an open period of an open year
      (resolve_open_period raises PeriodNotOpenError).
    - Periods close in date order: closing P is refused while an earlier
      period of the same year is open.  Reopening P is refused while a
      later period of the same year is closed.
    - A year closes only when all its periods are closed and no earlier
      year of the hospital is open.
    - There is no cached "current period"; every call resolves explicitly.

Concurrency:
    resolve_open_period takes FOR SHARE on the period row; close_period
    takes FOR UPDATE on the year row, then the period row.  A close
    therefore waits for in-flight postings into that period, and two
    closes in the same year are serialized so the earlier-open check sees
    committed state.  (SQLite ignores row locks; PostgreSQL honours them.)

Failure modes:
    - PeriodNotOpenError, SequenceViolationError, PeriodOverlapError,
      PeriodNotFoundError, PeriodAlreadyClosedError, YearClosedError,
      InvalidRangeError.
"""

import calendar
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import PeriodInfo
from ledger_kernel.exceptions import (
    InvalidRangeError,
    PeriodAlreadyClosedError,
    PeriodNotFoundError,
    PeriodNotOpenError,
    PeriodOverlapError,
    SequenceViolationError,
    YearClosedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.calendar import FinancialPeriod, FinancialYear, YearStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.calendar")


class CalendarService(BaseService[FinancialPeriod]):
    """
    Financial calendar for all hospitals.

    Contract:
        Returns PeriodInfo DTOs; lifecycle methods flush within the caller's
        transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # =========================================================================
    # Years and period generation
    # =========================================================================

    def create_year(
        self,
        hospital_id: UUID,
        code: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FinancialYear:
        """
        Create an OPEN financial year.

        Raises:
            InvalidRangeError: end_date is not after start_date.
            PeriodOverlapError: range overlaps another year of the hospital.
        """
        if end_date <= start_date:
            raise InvalidRangeError(str(start_date), str(end_date))

        overlapping = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.hospital_id == hospital_id,
                FinancialYear.start_date <= end_date,
                FinancialYear.end_date >= start_date,
            )
        ).scalars().first()
        if overlapping is not None:
            raise PeriodOverlapError(code, overlapping.code)

        year = FinancialYear(
            hospital_id=hospital_id,
            code=code,
            start_date=start_date,
            end_date=end_date,
            status=YearStatus.OPEN.value,
            created_by_id=actor_id,
        )
        self.session.add(year)
        self.session.flush()

        logger.info(
            "financial_year_created",
            extra={
                "hospital_id": str(hospital_id),
                "year_code": code,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return year

    def generate_monthly_periods(self, year_id: UUID, actor_id: UUID) -> list[PeriodInfo]:
        """
        Split a year into calendar-month periods, clipped to the year bounds.

        Postconditions:
            - Periods are contiguous, ordered by period_index from 1, and
              cover start_date..end_date exactly.
            - Every generated period is open.

        Raises:
            PeriodOverlapError: the year already has periods.
        """
        year = self._get_year(year_id)
        if year.periods:
            raise PeriodOverlapError(f"{year.code} periods", year.periods[0].code)

        periods: list[FinancialPeriod] = []
        cursor = year.start_date
        index = 1
        while cursor <= year.end_date:
            month_end = date(
                cursor.year, cursor.month, calendar.monthrange(cursor.year, cursor.month)[1]
            )
            period = FinancialPeriod(
                year_id=year.id,
                hospital_id=year.hospital_id,
                period_index=index,
                code=f"{cursor.year:04d}-{cursor.month:02d}",
                start_date=cursor,
                end_date=min(month_end, year.end_date),
                is_open=True,
                created_by_id=actor_id,
            )
            self.session.add(period)
            periods.append(period)
            cursor = period.end_date + timedelta(days=1)
            index += 1

        self.session.flush()
        self.session.refresh(year)

        logger.info(
            "financial_periods_generated",
            extra={"year_code": year.code, "period_count": len(periods)},
        )
        return [PeriodInfo.from_model(p) for p in periods]

    # =========================================================================
    # Posting gate
    # =========================================================================

    def resolve_open_period(
        self,
        hospital_id: UUID,
        entry_date: date,
        lock: bool = True,
    ) -> PeriodInfo:
        """
        Return the open period (and its year) whose range contains
        ``entry_date``.

        Must be called inside the transaction that writes the entry.

        Raises:
            PeriodNotOpenError: no period covers the date, the covering
                period is closed, or its year is closed.
        """
        stmt = select(FinancialPeriod).where(
            FinancialPeriod.hospital_id == hospital_id,
            FinancialPeriod.start_date <= entry_date,
            FinancialPeriod.end_date >= entry_date,
        )
        if lock:
            stmt = stmt.with_for_update(read=True)
        period = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().first()

        reason = None
        if period is None:
            reason = PeriodNotOpenError.NO_PERIOD
        elif not period.year.is_open:
            reason = PeriodNotOpenError.YEAR_CLOSED
        elif not period.is_open:
            reason = PeriodNotOpenError.PERIOD_CLOSED

        if reason is not None:
            logger.warning(
                "posting_date_rejected",
                extra={
                    "hospital_id": str(hospital_id),
                    "entry_date": str(entry_date),
                    "reason": reason,
                },
            )
            raise PeriodNotOpenError(str(hospital_id), str(entry_date), reason)

        return PeriodInfo.from_model(period)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close_period(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        Close a period.

        Preconditions:
            - Every earlier period of the same year is closed.

        Raises:
            PeriodNotFoundError, PeriodAlreadyClosedError, YearClosedError,
            SequenceViolationError: an earlier period is still open.
        """
        period = self._get_period(period_id)
        year = self._lock_year(period.year_id)
        period = self._lock_period(period_id)

        if not year.is_open:
            raise YearClosedError(year.code)
        if not period.is_open:
            raise PeriodAlreadyClosedError(period.code)

        earlier_open = self.session.execute(
            select(FinancialPeriod)
            .where(
                FinancialPeriod.year_id == period.year_id,
                FinancialPeriod.period_index < period.period_index,
                FinancialPeriod.is_open.is_(True),
            )
            .order_by(FinancialPeriod.period_index)
        ).scalars().first()

        if earlier_open is not None:
            logger.warning(
                "period_close_out_of_order",
                extra={"period_code": period.code, "blocking_period": earlier_open.code},
            )
            raise SequenceViolationError(
                target=period.code,
                blocking=earlier_open.code,
                reason="an earlier period of the same year is still open",
            )

        period.is_open = False
        period.closed_at = self._clock.now()
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"period_code": period.code, "year_code": year.code},
        )
        return PeriodInfo.from_model(period)

    def reopen_period(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        Reopen the latest closed period of an open year.

        Raises:
            YearClosedError, SequenceViolationError: a later period of the
                same year is closed.
        """
        period = self._get_period(period_id)
        year = self._lock_year(period.year_id)
        period = self._lock_period(period_id)

        if not year.is_open:
            raise YearClosedError(year.code)
        if period.is_open:
            return PeriodInfo.from_model(period)

        later_closed = self.session.execute(
            select(FinancialPeriod)
            .where(
                FinancialPeriod.year_id == period.year_id,
                FinancialPeriod.period_index > period.period_index,
                FinancialPeriod.is_open.is_(False),
            )
            .order_by(FinancialPeriod.period_index)
        ).scalars().first()

        if later_closed is not None:
            raise SequenceViolationError(
                target=period.code,
                blocking=later_closed.code,
                reason="a later period of the same year is closed",
            )

        period.is_open = True
        period.closed_at = None
        period.closed_by_id = None
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info("period_reopened", extra={"period_code": period.code})
        return PeriodInfo.from_model(period)

    def close_year(self, year_id: UUID, actor_id: UUID) -> FinancialYear:
        """
        Close a financial year.

        Raises:
            PeriodAlreadyClosedError, SequenceViolationError: a period of the
                year is still open, or an earlier year is still open.
        """
        year = self._lock_year(year_id)
        if not year.is_open:
            raise PeriodAlreadyClosedError(year.code)

        open_period = self.session.execute(
            select(FinancialPeriod)
            .where(
                FinancialPeriod.year_id == year.id,
                FinancialPeriod.is_open.is_(True),
            )
            .order_by(FinancialPeriod.period_index)
        ).scalars().first()
        if open_period is not None:
            raise SequenceViolationError(
                target=year.code,
                blocking=open_period.code,
                reason="the year still has open periods",
            )

        earlier_year = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.hospital_id == year.hospital_id,
                FinancialYear.end_date < year.start_date,
                FinancialYear.status == YearStatus.OPEN.value,
            )
        ).scalars().first()
        if earlier_year is not None:
            raise SequenceViolationError(
                target=year.code,
                blocking=earlier_year.code,
                reason="an earlier financial year is still open",
            )

        year.status = YearStatus.CLOSED.value
        year.closed_at = self._clock.now()
        year.closed_by_id = actor_id
        year.updated_by_id = actor_id
        self.session.flush()

        logger.info("financial_year_closed", extra={"year_code": year.code})
        return year

    # =========================================================================
    # Queries
    # =========================================================================

    def get_year(self, year_id: UUID) -> FinancialYear:
        return self._get_year(year_id)

    def list_periods(self, year_id: UUID) -> list[PeriodInfo]:
        year = self._get_year(year_id)
        return [PeriodInfo.from_model(p) for p in year.periods]

    def get_open_periods(self, hospital_id: UUID) -> list[PeriodInfo]:
        periods = self.session.execute(
            select(FinancialPeriod)
            .join(FinancialYear, FinancialPeriod.year_id == FinancialYear.id)
            .where(
                FinancialPeriod.hospital_id == hospital_id,
                FinancialPeriod.is_open.is_(True),
                FinancialYear.status == YearStatus.OPEN.value,
            )
            .order_by(FinancialPeriod.start_date)
        ).scalars().all()
        return [PeriodInfo.from_model(p) for p in periods]

    def _get_year(self, year_id: UUID) -> FinancialYear:
        year = self.session.get(FinancialYear, year_id)
        if year is None:
            raise PeriodNotFoundError(str(year_id))
        return year

    def _get_period(self, period_id: UUID) -> FinancialPeriod:
        period = self.session.get(FinancialPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _lock_year(self, year_id: UUID) -> FinancialYear:
        year = self.session.execute(
            select(FinancialYear)
            .where(FinancialYear.id == year_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if year is None:
            raise PeriodNotFoundError(str(year_id))
        return year

    def _lock_period(self, period_id: UUID) -> FinancialPeriod:
        return self.session.execute(
            select(FinancialPeriod)
            .where(FinancialPeriod.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
