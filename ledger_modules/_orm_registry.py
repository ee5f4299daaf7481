"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs, and that the module
level immutability guards are in place.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``ledger_modules``
packages and from ``ledger_kernel`` (allowed: modules -> kernel).
``ledger_kernel.db.engine.create_tables`` imports it lazily.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``ledger_modules.*.orm`` module.

    Kernel tables come first; module tables reference them (FK to
    journal_entries.id, accounts.id).  Idempotent.
    """
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401  # sequence_counters
    # fmt: off
    import ledger_modules.billing.orm  # noqa: F401
    import ledger_modules.coverage.orm  # noqa: F401
    import ledger_modules.purchasing.orm  # noqa: F401
    from ledger_modules.cashier.orm import register_cashier_guards
    # fmt: on

    # Guards may have been removed by unregister_immutability_listeners().
    register_cashier_guards()
