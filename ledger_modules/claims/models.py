"""
Claims Domain Models (``ledger_modules.claims.models``).

The claim transition table and the frozen result of a settlement run.
Pure data, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import EntryInfo
from ledger_modules.billing.models import ClaimStatus

# NONE is a claim that was never opened; it moves like PENDING.
CLAIM_TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.NONE: frozenset(
        {ClaimStatus.PENDING, ClaimStatus.SUBMITTED, ClaimStatus.PAID, ClaimStatus.REJECTED}
    ),
    ClaimStatus.PENDING: frozenset({ClaimStatus.SUBMITTED, ClaimStatus.PAID, ClaimStatus.REJECTED}),
    ClaimStatus.SUBMITTED: frozenset({ClaimStatus.PAID, ClaimStatus.REJECTED, ClaimStatus.PENDING}),
    ClaimStatus.REJECTED: frozenset({ClaimStatus.SUBMITTED}),
    ClaimStatus.PAID: frozenset(),
}


def can_transition(current: ClaimStatus, target: ClaimStatus) -> bool:
    """Same-status moves are no-ops and always allowed."""
    current = ClaimStatus(current)
    target = ClaimStatus(target)
    return current == target or target in CLAIM_TRANSITIONS[current]


@dataclass(frozen=True)
class ClaimSettlementResult:
    """
    Outcome of ClaimSettlementService.settle_claims().

    ``updated`` lists invoices whose claim status changed in this run;
    ``skipped`` lists eligible invoices already in the target status.
    For a PAID run ``entry`` is the consolidated settlement entry, which is
    the earlier one when ``replayed`` is True.
    """

    target_status: ClaimStatus
    updated: tuple[UUID, ...] = ()
    skipped: tuple[UUID, ...] = ()
    ineligible: tuple[UUID, ...] = ()
    total_amount: Decimal = ZERO
    entry: EntryInfo | None = None
    replayed: bool = False
    receivable_totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.updated)

    @property
    def entry_id(self) -> UUID | None:
        return self.entry.id if self.entry is not None else None
