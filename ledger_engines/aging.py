"""
Module: ledger_engines.aging
Responsibility:
    Classify outstanding documents into aging buckets and roll them up per
    counterparty, with unallocated credit reported beside the buckets.
    Used for patient receivables, insurer receivables and supplier payables.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The reporting module gathers documents as of a date and hands them here.

Invariants enforced:
    - Purity: no clock access; as_of_date is a parameter.
    - Decimal-only arithmetic.
    - The grand total row equals the sum of all counterparty rows, bucket by
      bucket, and the sum of bucket totals equals the sum of outstanding
      document balances.

Failure modes:
    - ValueError when bucket bounds are not strictly increasing, or an age
      does not fall into any configured bucket.

Usage:
    from ledger_engines.aging import AgingCalculator

    calculator = AgingCalculator()
    calculator.calculate_age(date(2026, 1, 15), date(2026, 2, 15))  # 31
    calculator.classify(31).name                                     # "31-60"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.logging_config import get_logger
from ledger_engines.tracer import traced_engine

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of ages in days.

    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., 121+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days

    @property
    def is_unbounded(self) -> bool:
        return self.max_days is None


def buckets_from_bounds(bounds: Sequence[int]) -> tuple[AgeBucket, ...]:
    """
    Build buckets from upper bounds: (30, 60) -> 0-30, 31-60, 61+.

    Raises:
        ValueError: bounds empty, negative or not strictly increasing.
    """
    if not bounds:
        raise ValueError("At least one bucket bound is required")
    buckets: list[AgeBucket] = []
    lower = 0
    for upper in bounds:
        if upper < lower:
            raise ValueError(f"Bucket bounds must be strictly increasing: {list(bounds)}")
        buckets.append(AgeBucket(f"{lower}-{upper}", lower, upper))
        lower = upper + 1
    buckets.append(AgeBucket(f"{lower}+", lower, None))
    return tuple(buckets)


DEFAULT_BUCKETS: tuple[AgeBucket, ...] = buckets_from_bounds((30, 60, 90, 120))


@dataclass(frozen=True)
class AgedDocument:
    """An open document (invoice, claim, purchase) with its outstanding balance as of the report date."""

    document_id: str
    counterparty_id: str
    document_date: date
    outstanding: Decimal
    counterparty_name: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class CounterpartyAging:
    """
    One report row.

    ``buckets`` maps bucket name to amount, in bucket order, and always
    covers every bucket of the report.
    """

    counterparty_id: str
    counterparty_name: str | None
    buckets: dict[str, Decimal]
    unallocated_credit: Decimal = ZERO
    document_count: int = 0

    @property
    def total(self) -> Decimal:
        return sum(self.buckets.values(), ZERO)

    @property
    def net_total(self) -> Decimal:
        """Outstanding less credit not yet applied to any document."""
        return self.total - self.unallocated_credit


@dataclass(frozen=True)
class AgingReport:
    as_of_date: date
    kind: str
    buckets: tuple[AgeBucket, ...]
    rows: tuple[CounterpartyAging, ...]
    totals: CounterpartyAging
    documents: tuple[AgedDocument, ...] = field(default_factory=tuple)

    @property
    def grand_total(self) -> Decimal:
        return self.totals.total

    @property
    def total_unallocated_credit(self) -> Decimal:
        return self.totals.unallocated_credit

    def row_for(self, counterparty_id: str) -> CounterpartyAging | None:
        for row in self.rows:
            if row.counterparty_id == counterparty_id:
                return row
        return None


class AgingCalculator:
    """
    Calculate aging for dated documents.

    Contract:
        Pure functions -- no I/O, no database access.
    Non-goals:
        - Due dates / payment terms: age runs from the document date.
    """

    def __init__(self, buckets: Sequence[AgeBucket] | None = None):
        self.buckets: tuple[AgeBucket, ...] = tuple(buckets) if buckets else DEFAULT_BUCKETS

    def calculate_age(self, document_date: date, as_of_date: date) -> int:
        """Days from document date to as_of_date (negative for future documents)."""
        return (as_of_date - document_date).days

    def classify(self, age_days: int) -> AgeBucket:
        """
        Map an age to its bucket.

        Raises:
            ValueError: negative age, or no bucket contains it.
        """
        if age_days < 0:
            raise ValueError(f"Documents dated after the report date cannot be aged ({age_days})")
        for bucket in self.buckets:
            if bucket.contains(age_days):
                return bucket
        logger.warning(
            "age_classification_no_bucket",
            extra={"age_days": age_days, "bucket_count": len(self.buckets)},
        )
        raise ValueError(f"Age {age_days} does not fit any bucket")

    @traced_engine("aging", "1.0", fingerprint_fields=("as_of_date", "kind"))
    def build_report(
        self,
        as_of_date: date,
        documents: Sequence[AgedDocument],
        kind: str = "PATIENT",
        unallocated_credit: Mapping[str, Decimal] | None = None,
        counterparty_names: Mapping[str, str] | None = None,
    ) -> AgingReport:
        """
        Roll documents up into per-counterparty rows.

        Documents dated after as_of_date and documents with a non-positive
        outstanding balance are ignored.  Counterparties that only carry
        unallocated credit still get a row (with empty buckets).

        Rows are sorted by total descending, then counterparty id.
        """
        credits = dict(unallocated_credit or {})
        names = dict(counterparty_names or {})

        included: list[AgedDocument] = []
        per_party: dict[str, dict[str, Decimal]] = {}
        counts: dict[str, int] = {}

        for doc in documents:
            if doc.document_date > as_of_date or doc.outstanding <= 0:
                continue
            bucket = self.classify(self.calculate_age(doc.document_date, as_of_date))
            row = per_party.setdefault(doc.counterparty_id, self._empty_buckets())
            row[bucket.name] += doc.outstanding
            counts[doc.counterparty_id] = counts.get(doc.counterparty_id, 0) + 1
            if doc.counterparty_name and doc.counterparty_id not in names:
                names[doc.counterparty_id] = doc.counterparty_name
            included.append(doc)

        for party_id, credit in credits.items():
            if credit > 0:
                per_party.setdefault(party_id, self._empty_buckets())

        rows = [
            CounterpartyAging(
                counterparty_id=party_id,
                counterparty_name=names.get(party_id),
                buckets={name: round_money(v) for name, v in amounts.items()},
                unallocated_credit=round_money(max(credits.get(party_id, ZERO), ZERO)),
                document_count=counts.get(party_id, 0),
            )
            for party_id, amounts in per_party.items()
        ]
        rows.sort(key=lambda r: (-r.total, r.counterparty_id))

        grand = self._empty_buckets()
        for row in rows:
            for name, amount in row.buckets.items():
                grand[name] += amount
        totals = CounterpartyAging(
            counterparty_id="TOTAL",
            counterparty_name="Total",
            buckets=grand,
            unallocated_credit=sum((r.unallocated_credit for r in rows), ZERO),
            document_count=len(included),
        )

        logger.info(
            "aging_report_generated",
            extra={
                "as_of_date": as_of_date.isoformat(),
                "report_type": kind,
                "document_count": len(included),
                "counterparty_count": len(rows),
                "grand_total": str(totals.total),
            },
        )
        return AgingReport(
            as_of_date=as_of_date,
            kind=kind,
            buckets=self.buckets,
            rows=tuple(rows),
            totals=totals,
            documents=tuple(included),
        )

    def _empty_buckets(self) -> dict[str, Decimal]:
        return {bucket.name: ZERO for bucket in self.buckets}
