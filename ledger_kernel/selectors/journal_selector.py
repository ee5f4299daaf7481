"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only lookups of journal entries by id, by source
    object and by date range.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import EntryInfo
from ledger_kernel.models.journal import JournalEntry, SourceModule
from ledger_kernel.selectors.base import BaseSelector


class JournalSelector(BaseSelector[JournalEntry]):
    """Queries over posted journal entries, ordered by entry number."""

    def get_entry(self, entry_id: UUID) -> EntryInfo | None:
        entry = self.session.get(JournalEntry, entry_id)
        return EntryInfo.from_model(entry) if entry is not None else None

    def entries_for_source(
        self,
        hospital_id: UUID,
        source_module: SourceModule,
        source_id: str | UUID,
    ) -> list[EntryInfo]:
        """Every entry traced to one source object, reversals included."""
        entries = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.hospital_id == hospital_id,
                JournalEntry.source_module == SourceModule(source_module).value,
                JournalEntry.source_id == str(source_id),
            )
            .order_by(JournalEntry.sequence)
        ).scalars().all()
        return [EntryInfo.from_model(e) for e in entries]

    def list_entries(
        self,
        hospital_id: UUID,
        date_from: date,
        date_to: date,
        source_module: SourceModule | None = None,
    ) -> list[EntryInfo]:
        stmt = select(JournalEntry).where(
            JournalEntry.hospital_id == hospital_id,
            JournalEntry.entry_date >= date_from,
            JournalEntry.entry_date <= date_to,
        )
        if source_module is not None:
            stmt = stmt.where(JournalEntry.source_module == SourceModule(source_module).value)
        entries = self.session.execute(
            stmt.order_by(JournalEntry.entry_date, JournalEntry.sequence)
        ).scalars().all()
        return [EntryInfo.from_model(e) for e in entries]

    def count_entries(self, hospital_id: UUID) -> int:
        return len(
            self.session.execute(
                select(JournalEntry.id).where(JournalEntry.hospital_id == hospital_id)
            ).all()
        )
