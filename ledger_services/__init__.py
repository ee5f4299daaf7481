"""
ledger_services -- orchestration above the kernel and modules.

    events               EventBus and the domain events collaborators publish
    accounting_listener  turns events into journal postings
    setup                per-hospital chart and calendar bootstrap
    year_end             year-end closing entry and opening balances

Import submodules directly; this package does not import them eagerly.
"""
