"""
ORM-level append-only enforcement.

Posted financial facts must never change.  Corrections are new entries
(reversals), never edits.  This module registers SQLAlchemy mapper events
that fire BEFORE the UPDATE/DELETE SQL is emitted:

    session.flush()
         |
         v
    [before_update] --> _reject_update() --> ImmutabilityViolationError
    [before_delete] --> _reject_delete() --> ImmutabilityViolationError

Protected entities:

    Entity               | Rule
    ---------------------|----------------------------------------------
    JournalEntry         | no field may change, never deleted
    JournalLine          | no field may change, never deleted
    Account              | never deleted (deactivate instead)
    CashierShiftClosing  | registered by ledger_modules.cashier.orm

Audit metadata (updated_at, updated_by_id) is the only exception.
"""

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS and insp.attrs[attr.key].history.has_changes()
    ]


def _blocked(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _make_update_guard(entity_type: str):
    def _reject_update(mapper, connection, target):
        changed = _changed_fields(target)
        if changed:
            raise _blocked(
                entity_type,
                target,
                "UPDATE",
                f"field(s) {', '.join(sorted(changed))} are immutable",
            )

    return _reject_update


def _make_delete_guard(entity_type: str, reason: str):
    def _reject_delete(mapper, connection, target):
        raise _blocked(entity_type, target, "DELETE", reason)

    return _reject_delete


_guards: dict[tuple[type, str], object] = {}


def guard_append_only(model: type, entity_type: str | None = None) -> None:
    """
    Make ``model`` append-only: rows may be inserted but never updated or
    deleted.  Safe to call more than once per model.
    """
    name = entity_type or model.__name__
    _listen(model, "before_update", _make_update_guard(name))
    _listen(
        model,
        "before_delete",
        _make_delete_guard(name, f"{name} records are append-only"),
    )


def guard_no_delete(model: type, reason: str, entity_type: str | None = None) -> None:
    """Block deletion of ``model`` rows while still allowing updates."""
    name = entity_type or model.__name__
    _listen(model, "before_delete", _make_delete_guard(name, reason))


def _listen(model: type, event_name: str, fn) -> None:
    key = (model, event_name)
    if key in _guards:
        return
    event.listen(model, event_name, fn)
    _guards[key] = fn


def register_immutability_listeners() -> None:
    """Register the kernel's guards (idempotent; called at engine init)."""
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    guard_append_only(JournalEntry)
    guard_append_only(JournalLine)
    guard_no_delete(
        Account,
        "accounts are referenced by historical entries; deactivate instead",
    )


def unregister_immutability_listeners() -> None:
    """
    Remove every registered guard.

    WARNING: Only use this in tests that must corrupt data on purpose.
    """
    for (model, event_name), fn in list(_guards.items()):
        if event.contains(model, event_name, fn):
            event.remove(model, event_name, fn)
        del _guards[(model, event_name)]
