"""
Tests for AgingCalculator.

Verifies:
- Bucket construction and classification at the boundaries
- Per-counterparty rollup with a grand total equal to the sum of rows
- Unallocated credit reported beside (not inside) the buckets
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_engines.aging import (
    DEFAULT_BUCKETS,
    AgedDocument,
    AgingCalculator,
    buckets_from_bounds,
)

AS_OF = date(2026, 6, 30)


def _doc(doc_id, party, age_days, amount, name=None):
    return AgedDocument(
        document_id=doc_id,
        counterparty_id=party,
        document_date=AS_OF - timedelta(days=age_days),
        outstanding=Decimal(amount),
        counterparty_name=name,
    )


@pytest.fixture
def calculator():
    return AgingCalculator()


class TestBuckets:
    """Bucket bounds and classification."""

    def test_default_buckets(self):
        assert [b.name for b in DEFAULT_BUCKETS] == ["0-30", "31-60", "61-90", "91-120", "121+"]

    @pytest.mark.parametrize(
        "age,expected",
        [(0, "0-30"), (30, "0-30"), (31, "31-60"), (90, "61-90"), (120, "91-120"), (121, "121+"),
         (4000, "121+")],
    )
    def test_boundaries(self, calculator, age, expected):
        assert calculator.classify(age).name == expected

    def test_future_document_rejected(self, calculator):
        with pytest.raises(ValueError):
            calculator.classify(-1)

    def test_custom_bounds(self):
        buckets = buckets_from_bounds((15, 45))
        assert [b.name for b in buckets] == ["0-15", "16-45", "46+"]

    def test_bounds_must_increase(self):
        with pytest.raises(ValueError):
            buckets_from_bounds((60, 30))
        with pytest.raises(ValueError):
            buckets_from_bounds(())


class TestBuildReport:
    """Rollup per counterparty."""

    def test_rows_and_totals(self, calculator):
        report = calculator.build_report(
            AS_OF,
            [
                _doc("inv-1", "patient-a", 10, "100.000", "Alice"),
                _doc("inv-2", "patient-a", 45, "50.500"),
                _doc("inv-3", "patient-b", 200, "20.000", "Bob"),
            ],
        )

        alice = report.row_for("patient-a")
        assert alice.counterparty_name == "Alice"
        assert alice.buckets["0-30"] == Decimal("100.000")
        assert alice.buckets["31-60"] == Decimal("50.500")
        assert alice.total == Decimal("150.500")
        assert alice.document_count == 2
        assert report.row_for("patient-b").buckets["121+"] == Decimal("20.000")
        assert report.grand_total == Decimal("170.500")
        assert [r.counterparty_id for r in report.rows] == ["patient-a", "patient-b"]

    def test_ignores_future_and_settled_documents(self, calculator):
        report = calculator.build_report(
            AS_OF,
            [
                _doc("paid", "p", 5, "0.000"),
                _doc("future", "p", -3, "10.000"),
                _doc("open", "p", 5, "1.000"),
            ],
        )

        assert [d.document_id for d in report.documents] == ["open"]
        assert report.grand_total == Decimal("1.000")

    def test_unallocated_credit_reported_separately(self, calculator):
        report = calculator.build_report(
            AS_OF,
            [_doc("inv-1", "patient-a", 3, "40.000")],
            unallocated_credit={"patient-a": Decimal("15.000"), "patient-c": Decimal("5.000")},
            counterparty_names={"patient-c": "Carol"},
        )

        row_a = report.row_for("patient-a")
        row_c = report.row_for("patient-c")
        assert row_a.total == Decimal("40.000")
        assert row_a.net_total == Decimal("25.000")
        assert row_c.total == Decimal("0.000")
        assert row_c.counterparty_name == "Carol"
        assert report.total_unallocated_credit == Decimal("20.000")
        assert report.grand_total == Decimal("40.000")

    def test_empty_report(self, calculator):
        report = calculator.build_report(AS_OF, [])
        assert report.rows == ()
        assert report.grand_total == Decimal("0.000")
        assert set(report.totals.buckets) == {b.name for b in DEFAULT_BUCKETS}

    @given(
        docs=st.lists(
            st.tuples(
                st.sampled_from(["a", "b", "c", "d"]),
                st.integers(min_value=0, max_value=400),
                st.decimals(
                    min_value=Decimal("0.001"), max_value=Decimal("100000"),
                    places=3, allow_nan=False, allow_infinity=False,
                ),
            ),
            max_size=30,
        )
    )
    @settings(max_examples=150, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_grand_total_equals_sum_of_rows(self, docs):
        documents = [
            _doc(f"doc-{i}", party, age, amount) for i, (party, age, amount) in enumerate(docs)
        ]
        report = AgingCalculator().build_report(AS_OF, documents)

        assert report.grand_total == sum((r.total for r in report.rows), Decimal("0"))
        assert report.grand_total == sum((d.outstanding for d in documents), Decimal("0"))
        for bucket in report.buckets:
            assert report.totals.buckets[bucket.name] == sum(
                (r.buckets[bucket.name] for r in report.rows), Decimal("0")
            )
