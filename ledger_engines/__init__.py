"""
Module: ledger_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: the
    coverage split and the aging bucket engine.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel.db.types and ledger_kernel.logging_config.
    MUST NOT import ledger_services or ledger_modules.

Invariants enforced:
    - Purity: engines never read the clock; dates are parameters.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.
"""

from ledger_engines.aging import (
    DEFAULT_BUCKETS,
    AgeBucket,
    AgedDocument,
    AgingCalculator,
    AgingReport,
    CounterpartyAging,
    buckets_from_bounds,
)
from ledger_engines.coverage import (
    CopayType,
    CoverageCalculator,
    CoveragePlanSpec,
    CoverageRuleSpec,
    CoverageSplit,
    RuleType,
    split_exact,
)

__all__ = [
    "DEFAULT_BUCKETS",
    "AgeBucket",
    "AgedDocument",
    "AgingCalculator",
    "AgingReport",
    "CounterpartyAging",
    "buckets_from_bounds",
    "CopayType",
    "CoverageCalculator",
    "CoveragePlanSpec",
    "CoverageRuleSpec",
    "CoverageSplit",
    "RuleType",
    "split_exact",
]
