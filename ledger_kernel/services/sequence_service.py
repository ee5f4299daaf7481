"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for journal entry numbering, one
    named sequence per hospital.  Uses a counter table with row-level
    locking (``SELECT ... FOR UPDATE``) so concurrent postings never share
    or skip a number.  Aggregate max-plus-one is never used.

Architecture position:
    Kernel > Services.  Called by JournalWriter.

Failure modes:
    - IntegrityError on concurrent counter creation is absorbed by a
      savepoint and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named sequence; the locked row is the source of truth."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    Guarantees:
        - Values are strictly monotonic per sequence name.
        - The increment is visible only when the caller commits; a rollback
          returns the value.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    JOURNAL_ENTRY = "journal_entry"
    SHIFT_CLOSING = "shift_closing"

    def __init__(self, session: Session):
        self._session = session

    @classmethod
    def journal_sequence_name(cls, hospital_id) -> str:
        return f"{cls.JOURNAL_ENTRY}:{hospital_id}"

    @classmethod
    def shift_closing_sequence_name(cls, hospital_id, operator_id) -> str:
        return f"{cls.SHIFT_CLOSING}:{hospital_id}:{operator_id}"

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value (always > 0).
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
