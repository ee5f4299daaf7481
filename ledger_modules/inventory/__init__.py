"""Cost of goods sold for dispensed drugs and supplies."""

from ledger_modules.inventory.service import DispenseCategory, InventoryPostingService

__all__ = ["DispenseCategory", "InventoryPostingService"]
