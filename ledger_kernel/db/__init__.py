"""Database layer - engine, base classes, money type, and immutability guards."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, MoneyAmount, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MoneyAmount",
    "MONEY_DECIMAL_PLACES",
    "round_money",
]
