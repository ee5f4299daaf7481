"""
Module: ledger_kernel.models.calendar
Responsibility: ORM persistence for financial years and their periods -- the
    control surface that decides which dates accept postings.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Years of one hospital do not overlap (CalendarService.create_year).
    - Periods of a year are ordered by period_index, non-overlapping, and
      cover the full year (CalendarService.generate_monthly_periods).
    - Periods close in date order (CalendarService.close_period).

Audit relevance:
    closed_at / closed_by_id record who locked a period against posting.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class YearStatus(str, Enum):
    """Financial year lifecycle."""

    OPEN = "open"
    CLOSED = "closed"


class FinancialYear(TrackedBase):
    """A hospital's financial year; parent of its ordered periods."""

    __tablename__ = "financial_years"

    __table_args__ = (
        UniqueConstraint("hospital_id", "code", name="uq_financial_year_code"),
        Index("idx_financial_year_dates", "hospital_id", "start_date", "end_date"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[YearStatus] = mapped_column(
        String(10),
        default=YearStatus.OPEN.value,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    periods: Mapped[list["FinancialPeriod"]] = relationship(
        back_populates="year",
        order_by="FinancialPeriod.period_index",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<FinancialYear {self.code} ({self.status})>"

    @property
    def is_open(self) -> bool:
        return YearStatus(self.status) == YearStatus.OPEN

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date


class FinancialPeriod(TrackedBase):
    """A contiguous slice of a financial year that is either open or closed."""

    __tablename__ = "financial_periods"

    __table_args__ = (
        UniqueConstraint("year_id", "period_index", name="uq_period_year_index"),
        Index("idx_period_lookup", "hospital_id", "start_date", "end_date"),
    )

    year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financial_years.id"),
        nullable=False,
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    period_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # "YYYY-MM"
    code: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_open: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    year: Mapped[FinancialYear] = relationship(back_populates="periods")

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<FinancialPeriod {self.code} ({state})>"

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
