"""
JournalWriter -- atomic, idempotent, balanced journal posting.

Responsibility:
    Turns a semantic transaction (LineSpecs naming accounts directly or by
    SystemAccountKey) into one persisted JournalEntry with its lines.
    Handles line validation, balance validation, idempotency, the open
    period gate, account resolution and entry numbering.

Architecture position:
    Kernel > Services.  The only writer of JournalEntry/JournalLine besides
    ReversalService.  Called by module services (billing, claims, cashier,
    purchasing, inventory postings) inside their transaction.

Invariants enforced:
    - sum(debit) == sum(credit); checked before anything touches the
      session, so an unbalanced request persists nothing.
    - Each line has exactly one non-zero, non-negative side with at most
      three fractional digits.
    - Idempotency: one entry per (hospital, source module, source id,
      purpose).  Checked under FOR UPDATE, backed by a UNIQUE constraint;
      a replay returns the original entry with status ALREADY_EXISTS.
    - No posting outside an open period (CalendarService).
    - Every system key resolves before any row is written.
    - Inactive accounts accept no new postings, except reversal lines and
      year-end closing lines, which move balances already posted to them.
    - Entry numbers come from SequenceService, never max+1.

Failure modes:
    - InvalidEntryLinesError, UnbalancedEntryError: caller defects.
    - PeriodNotOpenError: date not in an open period.
    - ConfigurationError: a system key is unmapped.
    - AccountNotFoundError / AccountInactiveError / InvalidAccountError.
    - ConcurrentPostingError: a concurrent insert of the same key vanished
      before it could be read back (retry re-runs the idempotency check).

Non-goals:
    - Does NOT commit; the caller owns the transaction.
"""

import time
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, has_money_precision
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryInfo, LineSpec, PostingResult
from ledger_kernel.exceptions import (
    AccountInactiveError,
    ConcurrentPostingError,
    InvalidAccountError,
    InvalidEntryLinesError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account, SystemAccountKey
from ledger_kernel.models.journal import JournalEntry, JournalLine, SourceModule
from ledger_kernel.services.account_registry import AccountRegistry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.calendar_service import CalendarService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal_writer")

DEFAULT_PURPOSE = "default"


def build_idempotency_key(
    hospital_id: UUID,
    source_module: SourceModule,
    source_id: str | None,
    purpose: str,
) -> str | None:
    """Key identifying "the entry for this source event and purpose"."""
    if source_id is None:
        return None
    return f"{hospital_id}:{SourceModule(source_module).value}:{source_id}:{purpose}"


def validate_lines(lines: Sequence[LineSpec]) -> tuple[Decimal, Decimal]:
    """
    Check line shape and balance.

    Returns:
        (total_debit, total_credit), which are equal.

    Raises:
        InvalidEntryLinesError: fewer than two lines, a line with zero or two
            sides, or an amount finer than currency precision.
        UnbalancedEntryError: totals differ.
    """
    if len(lines) < 2:
        raise InvalidEntryLinesError(f"an entry needs at least 2 lines, got {len(lines)}")

    total_debit = ZERO
    total_credit = ZERO
    for index, line in enumerate(lines):
        if (line.debit > 0) == (line.credit > 0):
            raise InvalidEntryLinesError(
                "exactly one of debit/credit must be non-zero", line_index=index
            )
        if not has_money_precision(line.debit) or not has_money_precision(line.credit):
            raise InvalidEntryLinesError(
                "amount has more fractional digits than the currency allows",
                line_index=index,
            )
        total_debit += line.debit
        total_credit += line.credit

    if total_debit != total_credit:
        logger.warning(
            "unbalanced_entry_rejected",
            extra={"debits": str(total_debit), "credits": str(total_credit)},
        )
        raise UnbalancedEntryError(str(total_debit), str(total_credit))

    return total_debit, total_credit


class JournalWriter(BaseService[JournalEntry]):
    """
    Posts balanced journal entries.

    Contract:
        post_entry() either persists one complete entry (flushed, not
        committed) and returns WRITTEN, returns the existing entry as
        ALREADY_EXISTS, or raises before anything is written.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        registry: AccountRegistry | None = None,
        calendar: CalendarService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._registry = registry or AccountRegistry(session)
        self._calendar = calendar or CalendarService(session, self._clock)
        self._sequences = SequenceService(session)

    def post_entry(
        self,
        hospital_id: UUID,
        entry_date: date,
        description: str,
        source_module: SourceModule,
        source_id: str | UUID | None,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        purpose: str = DEFAULT_PURPOSE,
        reversal_of_id: UUID | None = None,
    ) -> PostingResult:
        """
        Create one balanced journal entry.

        Args:
            hospital_id: Owning hospital.
            entry_date: Accounting date; must fall in an open period.
            description: Free text shown on ledgers.
            source_module: Originating module tag.
            source_id: Id of the triggering domain object (None for manual
                entries, which are never deduplicated).
            lines: Two or more LineSpecs.
            actor_id: Who caused the posting.
            purpose: Distinguishes several postings for one source object,
                and carries any time window (e.g. "bed-charge:2026-10-18").
            reversal_of_id: Set only by ReversalService.

        Returns:
            PostingResult (WRITTEN or ALREADY_EXISTS).
        """
        t0 = time.monotonic()
        source_module = SourceModule(source_module)
        source_id = str(source_id) if source_id is not None else None

        with LogContext.bind(
            hospital_id=hospital_id,
            actor_id=actor_id,
            source_module=source_module.value,
            source_id=source_id,
        ):
            total, _ = validate_lines(lines)

            key = build_idempotency_key(hospital_id, source_module, source_id, purpose)
            if key is not None:
                existing = self._get_existing_entry(key)
                if existing is not None:
                    logger.info(
                        "journal_entry_replayed",
                        extra={"entry_number": existing.entry_number, "purpose": purpose},
                    )
                    return PostingResult.already_exists(EntryInfo.from_model(existing))

            period = self._calendar.resolve_open_period(hospital_id, entry_date)
            # Reversals and year-end closings move balances already posted.
            allow_inactive = (
                reversal_of_id is not None or source_module is SourceModule.CLOSING
            )
            accounts = [
                self._resolve_account(hospital_id, line, i, allow_inactive=allow_inactive)
                for i, line in enumerate(lines)
            ]

            savepoint = self.session.begin_nested()
            try:
                entry = self._insert_entry(
                    hospital_id=hospital_id,
                    entry_date=entry_date,
                    description=description,
                    source_module=source_module,
                    source_id=source_id,
                    purpose=purpose,
                    idempotency_key=key,
                    period_id=period.period_id,
                    reversal_of_id=reversal_of_id,
                    lines=lines,
                    accounts=accounts,
                    actor_id=actor_id,
                )
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                if key is None:
                    raise
                logger.warning("concurrent_posting_conflict", extra={"idempotency_key": key})
                existing = self._get_existing_entry(key)
                if existing is None:
                    raise ConcurrentPostingError(key)
                return PostingResult.already_exists(EntryInfo.from_model(existing))

            self.session.refresh(entry)
            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_id": str(entry.id),
                    "entry_number": entry.entry_number,
                    "entry_date": str(entry_date),
                    "period_code": period.period_code,
                    "purpose": purpose,
                    "amount": str(total),
                    "line_count": len(lines),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return PostingResult.written(EntryInfo.from_model(entry))

    def _get_existing_entry(self, idempotency_key: str) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.idempotency_key == idempotency_key)
            .with_for_update()
        ).scalar_one_or_none()

    def _resolve_account(
        self, hospital_id: UUID, line: LineSpec, index: int, allow_inactive: bool = False
    ) -> Account:
        if isinstance(line.account, UUID):
            account = self._registry.get_account(line.account)
            if account.hospital_id != hospital_id:
                raise InvalidAccountError(str(account.id), "account belongs to another hospital")
            if not account.is_active and not allow_inactive:
                raise AccountInactiveError(str(account.id))
            return account
        try:
            key = SystemAccountKey(line.account)
        except ValueError:
            raise InvalidEntryLinesError(
                f"line account must be a UUID or system key, got {line.account!r}",
                line_index=index,
            ) from None
        return self._registry.resolve(hospital_id, key)

    def _insert_entry(
        self,
        *,
        hospital_id: UUID,
        entry_date: date,
        description: str,
        source_module: SourceModule,
        source_id: str | None,
        purpose: str,
        idempotency_key: str | None,
        period_id: UUID,
        reversal_of_id: UUID | None,
        lines: Sequence[LineSpec],
        accounts: Sequence[Account],
        actor_id: UUID,
    ) -> JournalEntry:
        sequence = self._sequences.next_value(
            SequenceService.journal_sequence_name(hospital_id)
        )
        entry = JournalEntry(
            hospital_id=hospital_id,
            entry_number=f"JE-{sequence:06d}",
            sequence=sequence,
            entry_date=entry_date,
            description=description,
            source_module=source_module.value,
            source_id=source_id,
            purpose=purpose,
            idempotency_key=idempotency_key,
            period_id=period_id,
            reversal_of_id=reversal_of_id,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        for seq, (line, account) in enumerate(zip(lines, accounts), start=1):
            self.session.add(
                JournalLine(
                    entry_id=entry.id,
                    line_seq=seq,
                    account_id=account.id,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()
        return entry
