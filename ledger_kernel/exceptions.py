"""
Ledger exception hierarchy.

Every error the engine raises derives from LedgerError and carries a
machine-readable ``code`` class attribute plus its context as attributes,
so that the structured log formatter and API layers can report it without
parsing message strings.

    LedgerError
    +-- ConfigurationError            missing/inactive system account mapping
    +-- PeriodError
    |   +-- PeriodNotOpenError        no open period covers the date
    |   +-- SequenceViolationError    periods/years closed out of order
    |   +-- PeriodOverlapError
    |   +-- PeriodNotFoundError
    |   +-- PeriodAlreadyClosedError
    |   +-- YearClosedError
    |   +-- DateOutsideYearError
    +-- PostingError
    |   +-- UnbalancedEntryError
    |   +-- InvalidEntryLinesError
    |   +-- InvalidAccountError
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- DuplicateAccountCodeError
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- EntryAlreadyReversedError
    |   +-- InvalidReversalDateError
    +-- ConcurrencyError
    |   +-- ConcurrentPostingError
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    +-- ValidationError
    |   +-- InvalidRangeError
    |   +-- NonNegativeCashRequiredError
    |   +-- OverpaymentError
    |   +-- InvalidAmountError
    +-- BillingError
    |   +-- InvoiceNotFoundError
    |   +-- InvalidInvoiceStateError
    |   +-- InvalidClaimTransitionError
    |   +-- NoEligibleInvoicesError
    |   +-- InsuranceProviderNotFoundError
    |   +-- CoveragePlanNotFoundError
    +-- CashierError
    |   +-- ShiftOverlapError
    +-- PurchasingError
        +-- SupplierNotFoundError
        +-- PurchaseInvoiceNotFoundError

Categories let callers react uniformly: PeriodError and ConfigurationError
are actionable setup gaps, ConcurrencyError is retryable, PostingError is a
caller defect.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    code: str = "LEDGER_ERROR"


# Configuration


class ConfigurationError(LedgerError):
    """
    A system account key has no usable mapping for a hospital.

    Fatal for the operation; an administrator must map the key.  Never
    silently defaulted.
    """

    code: str = "MISSING_SYSTEM_ACCOUNT"

    def __init__(self, hospital_id: str, key: str, reason: str = "no mapping"):
        self.hospital_id = hospital_id
        self.key = key
        self.reason = reason
        super().__init__(
            f"System account '{key}' is not configured for hospital {hospital_id} "
            f"({reason}). Ask the finance administrator to map it."
        )


# Period-related exceptions


class PeriodError(LedgerError):
    """Base exception for financial calendar errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotOpenError(PeriodError):
    """No open financial period accepts postings on the given date."""

    code: str = "PERIOD_NOT_OPEN"

    NO_PERIOD = "no_period"
    PERIOD_CLOSED = "period_closed"
    YEAR_CLOSED = "year_closed"

    def __init__(self, hospital_id: str, entry_date: str, reason: str):
        self.hospital_id = hospital_id
        self.entry_date = entry_date
        self.reason = reason
        super().__init__(
            f"No open financial period for {entry_date} ({reason}). "
            "Choose a date in an open period or contact the finance administrator."
        )


class SequenceViolationError(PeriodError):
    """Periods or years must be closed (and reopened) in date order."""

    code: str = "SEQUENCE_VIOLATION"

    def __init__(self, target: str, blocking: str, reason: str):
        self.target = target
        self.blocking = blocking
        self.reason = reason
        super().__init__(f"Cannot change {target}: {reason} ({blocking})")


class PeriodOverlapError(PeriodError):
    """A new financial year overlaps an existing one."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_code: str, existing_code: str):
        self.new_code = new_code
        self.existing_code = existing_code
        super().__init__(f"Financial year {new_code} overlaps {existing_code}")


class PeriodNotFoundError(PeriodError):
    """Financial year or period does not exist."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Financial period or year not found: {identifier}")


class PeriodAlreadyClosedError(PeriodError):
    """Attempt to close a period or year that is already closed."""

    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"{label} is already closed")


class YearClosedError(PeriodError):
    """The financial year is closed; its periods cannot change state."""

    code: str = "YEAR_CLOSED"

    def __init__(self, year_code: str):
        self.year_code = year_code
        super().__init__(f"Financial year {year_code} is closed")


class DateOutsideYearError(PeriodError):
    """A year-scoped entry is dated outside its financial year."""

    code: str = "DATE_OUTSIDE_YEAR"

    def __init__(self, year_code: str, entry_date: str):
        self.year_code = year_code
        self.entry_date = entry_date
        super().__init__(f"{entry_date} is outside financial year {year_code}")


# Posting-related exceptions


class PostingError(LedgerError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Unbalanced entry: debits={debits}, credits={credits}")


class InvalidEntryLinesError(PostingError):
    """A journal line (or the line set) has an invalid shape."""

    code: str = "INVALID_ENTRY_LINES"

    def __init__(self, reason: str, line_index: int | None = None):
        self.reason = reason
        self.line_index = line_index
        where = f" (line {line_index})" if line_index is not None else ""
        super().__init__(f"Invalid journal lines{where}: {reason}")


class InvalidAccountError(PostingError):
    """Account is invalid for posting."""

    code: str = "INVALID_ACCOUNT"

    def __init__(self, account_id: str, reason: str):
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Invalid account {account_id}: {reason}")


# Account-related exceptions


class AccountError(LedgerError):
    """Base exception for chart of accounts errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AccountInactiveError(AccountError):
    """Account is deactivated and cannot receive postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} is inactive")


class DuplicateAccountCodeError(AccountError):
    """Account code already used within the hospital."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, hospital_id: str, account_code: str):
        self.hospital_id = hospital_id
        self.account_code = account_code
        super().__init__(
            f"Account code {account_code} already exists for hospital {hospital_id}"
        )


# Reversal-related exceptions


class ReversalError(LedgerError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry does not exist."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class EntryAlreadyReversedError(ReversalError):
    """Journal entry already has a reversal."""

    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_id: str, reversal_id: str):
        self.entry_id = entry_id
        self.reversal_id = reversal_id
        super().__init__(f"Entry {entry_id} already reversed by {reversal_id}")


class InvalidReversalDateError(ReversalError):
    """A reversal may not be dated before the entry it reverses."""

    code: str = "INVALID_REVERSAL_DATE"

    def __init__(self, entry_id: str, entry_date: str, reversal_date: str):
        self.entry_id = entry_id
        self.entry_date = entry_date
        self.reversal_date = reversal_date
        super().__init__(
            f"Reversal date {reversal_date} is before entry {entry_id} date {entry_date}"
        )


# Concurrency


class ConcurrencyError(LedgerError):
    """Base exception for retryable concurrency conflicts."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentPostingError(ConcurrencyError):
    """
    Another transaction posted the same idempotency key first.

    The current transaction must be rolled back; a retry re-runs the
    idempotency check and returns the winner's entry.
    """

    code: str = "CONCURRENT_POSTING"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Concurrent posting detected for {idempotency_key}; retry the operation"
        )


# Immutability


class ImmutabilityError(LedgerError):
    """Base exception for append-only violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Input validation


class ValidationError(LedgerError):
    """Base exception for rejected inputs at an engine boundary."""

    code: str = "VALIDATION_ERROR"


class InvalidRangeError(ValidationError):
    """Range end must be after range start."""

    code: str = "INVALID_RANGE"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(f"Invalid range: end {end} must be after start {start}")


class NonNegativeCashRequiredError(ValidationError):
    """Declared cash cannot be negative."""

    code: str = "NON_NEGATIVE_CASH_REQUIRED"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Declared cash must be zero or positive, got {amount}")


class OverpaymentError(ValidationError):
    """Payment exceeds what the patient still owes on the invoice."""

    code: str = "OVERPAYMENT"

    def __init__(self, invoice_id: str, amount: str, remaining: str):
        self.invoice_id = invoice_id
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            f"Payment {amount} exceeds remaining patient balance {remaining} "
            f"on invoice {invoice_id}"
        )


class InvalidAmountError(ValidationError):
    """A monetary input is negative, too precise, or out of range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: str, reason: str):
        self.field = field
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}")


# Billing and claims


class BillingError(LedgerError):
    """Base exception for invoice and claim errors."""

    code: str = "BILLING_ERROR"


class InvoiceNotFoundError(BillingError):
    """Invoice does not exist for the hospital."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvalidInvoiceStateError(BillingError):
    """Operation not allowed for the invoice's current status."""

    code: str = "INVALID_INVOICE_STATE"

    def __init__(self, invoice_id: str, status: str, operation: str):
        self.invoice_id = invoice_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} invoice {invoice_id} in status {status}")


class InvalidClaimTransitionError(BillingError):
    """Claim status transition is not permitted."""

    code: str = "INVALID_CLAIM_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Claim on invoice {invoice_id} cannot move from {from_status} to {to_status}"
        )


class NoEligibleInvoicesError(BillingError):
    """No selected invoice has an insurer share to settle."""

    code: str = "NO_ELIGIBLE_INVOICES"

    def __init__(self, requested: int):
        self.requested = requested
        super().__init__(
            f"None of the {requested} selected invoices has an insurance share to settle"
        )


class InsuranceProviderNotFoundError(BillingError):
    code: str = "INSURANCE_PROVIDER_NOT_FOUND"

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Insurance provider not found: {provider_id}")


class CoveragePlanNotFoundError(BillingError):
    code: str = "COVERAGE_PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Coverage plan not found: {plan_id}")


# Cashier


class CashierError(LedgerError):
    """Base exception for cashier reconciliation errors."""

    code: str = "CASHIER_ERROR"


class ShiftOverlapError(CashierError):
    """A closing already exists for an overlapping range of the operator."""

    code: str = "SHIFT_OVERLAP"

    def __init__(self, operator_id: str, existing_closing_id: str):
        self.operator_id = operator_id
        self.existing_closing_id = existing_closing_id
        super().__init__(
            f"Operator {operator_id} already has closing {existing_closing_id} "
            "for an overlapping range"
        )


# Purchasing


class PurchasingError(LedgerError):
    """Base exception for supplier invoice and payment errors."""

    code: str = "PURCHASING_ERROR"


class SupplierNotFoundError(PurchasingError):
    code: str = "SUPPLIER_NOT_FOUND"

    def __init__(self, supplier_id: str):
        self.supplier_id = supplier_id
        super().__init__(f"Supplier not found: {supplier_id}")


class PurchaseInvoiceNotFoundError(PurchasingError):
    code: str = "PURCHASE_INVOICE_NOT_FOUND"

    def __init__(self, purchase_invoice_id: str):
        self.purchase_invoice_id = purchase_invoice_id
        super().__init__(f"Purchase invoice not found: {purchase_invoice_id}")
