"""
Tests for the coverage split engine.

Verifies:
- Rule precedence: item rule, then category rule, then the plan default
- Exclusions, fixed copays and the patient cap
- patient_share + insurance_share == amount for every input (property test)
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from ledger_engines.coverage import (
    CASH_PATIENT,
    PLAN_DEFAULT,
    CopayType,
    CoverageCalculator,
    CoveragePlanSpec,
    CoverageRuleSpec,
    RuleType,
    split_exact,
)

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)
rates = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


def _plan(default_rate="20", rules=(), max_copay=None):
    return CoveragePlanSpec(
        id="plan-1",
        default_copay_rate=Decimal(default_rate),
        max_copay_amount=max_copay,
        rules=tuple(rules),
    )


@pytest.fixture
def calculator():
    return CoverageCalculator()


class TestRulePrecedence:
    """Item rule beats category rule beats the plan default."""

    def test_cash_patient_pays_everything(self, calculator):
        split = calculator.compute_share(None, service_amount=Decimal("75.000"))

        assert split.patient_share == Decimal("75.000")
        assert split.insurance_share == Decimal("0.000")
        assert split.rule_applied == CASH_PATIENT

    def test_plan_default_rate(self, calculator):
        split = calculator.compute_share(_plan("20"), service_amount=Decimal("100.000"))

        assert split.patient_share == Decimal("20.000")
        assert split.insurance_share == Decimal("80.000")
        assert split.rule_applied == PLAN_DEFAULT

    def test_category_rule(self, calculator):
        rule = CoverageRuleSpec(
            id="lab", rule_type=RuleType.INCLUSION,
            copay_value=Decimal("10"), service_category_id="LAB",
        )
        split = calculator.compute_share(
            _plan("20", [rule]), service_category_id="LAB", service_amount=Decimal("50.000")
        )

        assert split.patient_share == Decimal("5.000")
        assert split.rule_applied == "RULE:lab"

    def test_item_rule_wins_over_category(self, calculator):
        category = CoverageRuleSpec(
            id="lab", rule_type=RuleType.INCLUSION,
            copay_value=Decimal("10"), service_category_id="LAB",
        )
        item = CoverageRuleSpec(
            id="mri", rule_type=RuleType.INCLUSION, copay_value=Decimal("50"),
            service_category_id="LAB", service_item_id="MRI-01", requires_approval=True,
        )
        split = calculator.compute_share(
            _plan("20", [category, item]),
            service_category_id="LAB",
            service_item_id="MRI-01",
            service_amount=Decimal("400.000"),
        )

        assert split.patient_share == Decimal("200.000")
        assert split.requires_approval
        assert split.rule_applied == "RULE:mri"

    def test_pre_authorization_satisfies_approval(self, calculator):
        item = CoverageRuleSpec(
            id="mri", rule_type=RuleType.INCLUSION, copay_value=Decimal("50"),
            service_item_id="MRI-01", requires_approval=True,
        )
        split = calculator.compute_share(
            _plan("20", [item]), service_item_id="MRI-01",
            service_amount=Decimal("400.000"), pre_authorized=True,
        )
        assert not split.requires_approval

    def test_exclusion_leaves_patient_with_full_amount(self, calculator):
        rule = CoverageRuleSpec(
            id="cosmetic", rule_type=RuleType.EXCLUSION, service_category_id="COSMETIC"
        )
        split = calculator.compute_share(
            _plan("20", [rule]), service_category_id="COSMETIC", service_amount=Decimal("90.000")
        )

        assert split.patient_share == Decimal("90.000")
        assert not split.covered
        assert split.rule_applied == "EXCLUSION:cosmetic"

    def test_fixed_copay_capped_at_amount(self, calculator):
        rule = CoverageRuleSpec(
            id="visit", rule_type=RuleType.INCLUSION, copay_type=CopayType.FIXED_AMOUNT,
            copay_value=Decimal("15.000"), service_category_id="CONSULTATION",
        )
        plan = _plan("20", [rule])

        normal = calculator.compute_share(
            plan, service_category_id="CONSULTATION", service_amount=Decimal("60.000")
        )
        small = calculator.compute_share(
            plan, service_category_id="CONSULTATION", service_amount=Decimal("10.000")
        )

        assert (normal.patient_share, normal.insurance_share) == (
            Decimal("15.000"), Decimal("45.000"),
        )
        assert (small.patient_share, small.insurance_share) == (
            Decimal("10.000"), Decimal("0.000"),
        )

    def test_max_copay_caps_patient_share(self, calculator):
        split = calculator.compute_share(
            _plan("20", max_copay=Decimal("50.000")), service_amount=Decimal("1000.000")
        )
        assert split.patient_share == Decimal("50.000")
        assert split.insurance_share == Decimal("950.000")

    def test_compute_lines(self, calculator):
        splits = calculator.compute_lines(
            _plan("20"), [(None, None, Decimal("10.000")), ("LAB", None, Decimal("5.000"))]
        )
        assert [s.patient_share for s in splits] == [Decimal("2.000"), Decimal("1.000")]


class TestValidation:
    """Bad inputs are rejected."""

    def test_negative_amount(self, calculator):
        with pytest.raises(ValueError):
            calculator.compute_share(_plan(), service_amount=Decimal("-1.000"))

    def test_float_amount(self, calculator):
        with pytest.raises(ValueError):
            calculator.compute_share(_plan(), service_amount=10.5)

    def test_rate_above_hundred(self):
        with pytest.raises(ValueError):
            _plan("100.5")

    def test_rule_without_target(self):
        with pytest.raises(ValueError):
            CoverageRuleSpec(id="x", rule_type=RuleType.INCLUSION)


class TestSplitExactness:
    """The two shares always add back to the rounded amount."""

    def test_remainder_goes_to_larger_share(self):
        # 0.001 at 50%: both halves round up, the patient (tie) absorbs it.
        patient, insurance = split_exact(Decimal("0.001"), Decimal("0.0005"))
        assert patient + insurance == Decimal("0.001")
        assert min(patient, insurance) >= 0

    def test_one_third(self):
        patient, insurance = split_exact(Decimal("100.000"), Decimal("100.000") / 3)
        assert patient == Decimal("33.333")
        assert insurance == Decimal("66.667")

    @pytest.mark.parametrize("rate", ["0", "100"])
    def test_edge_rates(self, calculator, rate):
        split = calculator.compute_share(_plan(rate), service_amount=Decimal("123.456"))
        assert split.total == Decimal("123.456")
        assert Decimal("0") in (split.patient_share, split.insurance_share)

    def test_zero_amount(self, calculator):
        split = calculator.compute_share(_plan("20"), service_amount=Decimal("0.000"))
        assert split.patient_share == split.insurance_share == Decimal("0.000")

    @given(amount=amounts, rate=rates)
    @settings(
        max_examples=300,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    def test_shares_sum_to_amount(self, amount, rate):
        split = CoverageCalculator().compute_share(
            _plan(str(rate)), service_amount=amount
        )

        assert split.patient_share + split.insurance_share == amount
        assert split.patient_share >= 0
        assert split.insurance_share >= 0
        assert split.patient_share.as_tuple().exponent >= -3
        assert split.insurance_share.as_tuple().exponent >= -3

    @given(amount=amounts, copay=amounts)
    @settings(
        max_examples=200,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    def test_fixed_copay_never_exceeds_amount(self, amount, copay):
        rule = CoverageRuleSpec(
            id="fixed", rule_type=RuleType.INCLUSION, copay_type=CopayType.FIXED_AMOUNT,
            copay_value=copay, service_category_id="X",
        )
        split = CoverageCalculator().compute_share(
            _plan("20", [rule]), service_category_id="X", service_amount=amount
        )

        assert split.patient_share == min(copay, amount)
        assert split.total == amount
