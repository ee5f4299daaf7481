"""
ReversalService -- corrections by counter-entry.

Responsibility:
    Creates the mirror image of a posted entry: same accounts, debit and
    credit swapped, same source linkage, reversal_of_id pointing back.

Architecture position:
    Kernel > Services.  Routes through JournalWriter so the reversal gets
    the same balance, period and numbering guarantees as any posting.

Invariants enforced:
    - Posted entries are never mutated; reversal state is derived from the
      reversal_of_id linkage alone.
    - At most one reversal per entry (unique reversal_of_id).
    - A reversal is dated on or after the original and inside an open
      period.

Failure modes:
    - EntryNotFoundError, EntryAlreadyReversedError,
      InvalidReversalDateError, PeriodNotOpenError.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryInfo, LineSpec
from ledger_kernel.exceptions import (
    EntryAlreadyReversedError,
    EntryNotFoundError,
    InvalidReversalDateError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry, SourceModule
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_writer import JournalWriter

logger = get_logger("services.reversal")

REVERSAL_PURPOSE_PREFIX = "reversal"


class ReversalService(BaseService[JournalEntry]):
    """
    Reverses journal entries.

    Contract:
        reverse_entry() flushes one new entry and returns it; the caller
        commits.

    Non-goals:
        - Partial (line-level) reversals.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        writer: JournalWriter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._writer = writer or JournalWriter(session, self._clock)

    def reverse_entry(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID,
        reversal_date: date | None = None,
    ) -> EntryInfo:
        """
        Post the reversing entry for ``entry_id``.

        Args:
            entry_id: Entry to reverse.
            reason: Recorded in the reversal's description.
            actor_id: Who reverses.
            reversal_date: Defaults to today per the injected clock.

        Raises:
            EntryNotFoundError: No such entry.
            EntryAlreadyReversedError: A reversal already exists.
            InvalidReversalDateError: Date precedes the original's.
            PeriodNotOpenError: Date is not in an open period.
        """
        original = self.session.execute(
            select(JournalEntry).where(JournalEntry.id == entry_id).with_for_update()
        ).scalar_one_or_none()
        if original is None:
            raise EntryNotFoundError(str(entry_id))

        existing = self.session.execute(
            select(JournalEntry.id).where(JournalEntry.reversal_of_id == entry_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise EntryAlreadyReversedError(str(entry_id), str(existing))

        effective_date = reversal_date or self._clock.today()
        if effective_date < original.entry_date:
            raise InvalidReversalDateError(
                str(entry_id), str(original.entry_date), str(effective_date)
            )

        lines = [
            LineSpec(
                account=line.account_id,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
            )
            for line in original.lines
        ]

        result = self._writer.post_entry(
            hospital_id=original.hospital_id,
            entry_date=effective_date,
            description=f"Reversal of {original.entry_number}: {reason}",
            source_module=SourceModule(original.source_module),
            source_id=original.source_id,
            lines=lines,
            actor_id=actor_id,
            purpose=f"{REVERSAL_PURPOSE_PREFIX}:{original.id}",
            reversal_of_id=original.id,
        )

        logger.info(
            "journal_entry_reversed",
            extra={
                "entry_id": str(original.id),
                "entry_number": original.entry_number,
                "reversal_entry_number": result.entry.entry_number,
                "reversal_date": str(effective_date),
                "reason": reason,
            },
        )
        return result.entry
