"""
Tests for CoverageService: persisted plans and rules feeding the coverage
calculator.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from ledger_engines.coverage import CASH_PATIENT, CopayType, RuleType
from ledger_kernel.exceptions import CoveragePlanNotFoundError


@pytest.fixture
def plan_id(coverage_service, seeded_hospital, test_actor_id):
    plan = coverage_service.create_plan(
        seeded_hospital, "Silver", Decimal("20"), test_actor_id,
        max_copay_amount=Decimal("100.000"),
    )
    return UUID(plan.id)


class TestPlans:
    """Plans and their rules round-trip through the database."""

    def test_plan_spec(self, coverage_service, plan_id):
        spec = coverage_service.plan_spec(plan_id)

        assert spec.default_copay_rate == Decimal("20")
        assert spec.max_copay_amount == Decimal("100.000")
        assert spec.rules == ()

    def test_rules_attached(self, coverage_service, plan_id, test_actor_id):
        rule = coverage_service.add_rule(
            plan_id, RuleType.INCLUSION, test_actor_id,
            copay_type=CopayType.FIXED_AMOUNT, copay_value=Decimal("5.000"),
            service_item_id="XRAY-CHEST",
        )

        spec = coverage_service.plan_spec(plan_id)
        assert [r.id for r in spec.rules] == [rule.id]
        assert spec.rules[0].copay_type == CopayType.FIXED_AMOUNT

    def test_invalid_rate_rejected(self, coverage_service, seeded_hospital, test_actor_id):
        with pytest.raises(ValueError):
            coverage_service.create_plan(seeded_hospital, "Bad", Decimal("101"), test_actor_id)

    def test_rule_on_unknown_plan(self, coverage_service, test_actor_id):
        with pytest.raises(CoveragePlanNotFoundError):
            coverage_service.add_rule(
                uuid4(), RuleType.EXCLUSION, test_actor_id, service_category_id="COSMETIC"
            )


class TestComputeChargeSplit:
    """Prospective charge splits."""

    def test_cash_patient(self, coverage_service):
        split = coverage_service.compute_charge_split(None, None, None, Decimal("30.000"))
        assert split.patient_share == Decimal("30.000")
        assert split.rule_applied == CASH_PATIENT

    def test_exclusion_rule(self, coverage_service, plan_id, test_actor_id):
        coverage_service.add_rule(
            plan_id, RuleType.EXCLUSION, test_actor_id, service_category_id="COSMETIC"
        )

        split = coverage_service.compute_charge_split(
            plan_id, "COSMETIC", None, Decimal("500.000")
        )

        assert split.patient_share == Decimal("500.000")
        assert split.insurance_share == Decimal("0.000")

    def test_cap_applies(self, coverage_service, plan_id):
        split = coverage_service.compute_charge_split(
            plan_id, None, None, Decimal("2000.000")
        )

        assert split.patient_share == Decimal("100.000")
        assert split.insurance_share == Decimal("1900.000")

    def test_approval_required_until_pre_authorized(
        self, coverage_service, plan_id, test_actor_id
    ):
        coverage_service.add_rule(
            plan_id, RuleType.INCLUSION, test_actor_id, copay_value=Decimal("10"),
            service_item_id="MRI-BRAIN", requires_approval=True,
        )

        pending = coverage_service.compute_charge_split(
            plan_id, "IMAGING", "MRI-BRAIN", Decimal("800.000")
        )
        approved = coverage_service.compute_charge_split(
            plan_id, "IMAGING", "MRI-BRAIN", Decimal("800.000"), pre_authorized=True
        )

        assert pending.requires_approval
        assert not approved.requires_approval
        assert approved.patient_share == Decimal("80.000")
