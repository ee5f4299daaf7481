"""
Ledger Kernel - double-entry core of the hospital financial ledger.

Provides:
- A chart of accounts with per-hospital system account mappings
- A financial calendar with ordered period closing
- Idempotent, balanced journal posting and reversal
- Read-only ledger and trial balance projections
"""

__version__ = "0.1.0"
