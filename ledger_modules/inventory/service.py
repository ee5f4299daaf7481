"""
Inventory Posting Service (``ledger_modules.inventory.service``).

Responsibility
--------------
Moves the cost of dispensed stock from inventory to cost of goods sold.
Stock quantities and valuation are owned by the pharmacy/stores system;
this service only receives the dispensed cost and posts it.

Architecture
------------
Layer: **Modules** -- thin glue over ``JournalWriter``.

Invariants
----------
- One COGS entry per dispense (source INVENTORY, purpose ``cogs``);
  re-delivery of the same dispense returns the original entry.
- A zero-cost dispense posts nothing.
- Each public method owns its transaction boundary.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntryInfo, LineSpec
from ledger_kernel.exceptions import InvalidAmountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import SystemAccountKey
from ledger_kernel.models.journal import SourceModule
from ledger_kernel.services.journal_writer import JournalWriter

logger = get_logger("modules.inventory.service")

COGS_PURPOSE = "cogs"


class DispenseCategory(str, Enum):
    """What left the store: drugs or consumable supplies."""

    PHARMACY = "PHARMACY"
    SUPPLIES = "SUPPLIES"

    @property
    def cogs_key(self) -> SystemAccountKey:
        if self is DispenseCategory.PHARMACY:
            return SystemAccountKey.COGS_DRUGS
        return SystemAccountKey.COGS_SUPPLIES

    @property
    def inventory_key(self) -> SystemAccountKey:
        if self is DispenseCategory.PHARMACY:
            return SystemAccountKey.INVENTORY_DRUGS
        return SystemAccountKey.INVENTORY_SUPPLIES


class InventoryPostingService:
    """
    Posts cost of goods sold for dispenses.

    Transaction boundary: this service commits on success, rolls back on
    failure.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._writer = JournalWriter(session, self._clock)

    def record_dispense_cost(
        self,
        hospital_id: UUID,
        dispense_id: UUID,
        total_cost: Decimal,
        actor_id: UUID,
        category: DispenseCategory | str = DispenseCategory.PHARMACY,
        dispensed_on: date | None = None,
    ) -> EntryInfo | None:
        """
        Dr COGS / Cr inventory for ``total_cost``.

        Returns:
            The entry, or None when the cost is zero.

        Raises:
            InvalidAmountError: negative cost.
            ValueError: unknown category.
        """
        try:
            category = DispenseCategory(category)
            if total_cost < 0:
                raise InvalidAmountError("total_cost", str(total_cost), "cannot be negative")
            if total_cost == ZERO:
                logger.info(
                    "dispense_cost_skipped",
                    extra={"dispense_id": str(dispense_id), "reason": "zero_cost"},
                )
                return None

            result = self._writer.post_entry(
                hospital_id=hospital_id,
                entry_date=dispensed_on or self._clock.today(),
                description=f"Cost of {category.value.lower()} dispensed",
                source_module=SourceModule.INVENTORY,
                source_id=dispense_id,
                lines=[
                    LineSpec.dr(category.cogs_key, total_cost),
                    LineSpec.cr(category.inventory_key, total_cost),
                ],
                actor_id=actor_id,
                purpose=COGS_PURPOSE,
            )
            self._session.commit()
            logger.info(
                "dispense_cost_recorded",
                extra={
                    "dispense_id": str(dispense_id),
                    "category": category.value,
                    "amount": str(total_cost),
                    "entry_number": result.entry.entry_number,
                    "replayed": not result.created,
                },
            )
            return result.entry
        except Exception:
            self._session.rollback()
            raise
