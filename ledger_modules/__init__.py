"""
ledger_modules -- hospital collaborator modules built on the ledger kernel.

Each module owns its ORM tables and its transaction boundary; all postings
go through ``ledger_kernel.services.journal_writer``.

    billing      invoices, invoice lines, patient payments, insurers
    coverage     coverage plans and prospective charge splits
    claims       claim lifecycle and consolidated insurer settlement
    cashier      patient payment capture and shift reconciliation
    inventory    cost-of-goods postings on dispense
    purchasing   supplier invoices and payments
    reporting    counterparty aging
"""
