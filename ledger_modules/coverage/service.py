"""
Coverage Module Service -- plan maintenance and prospective charge splits.

Billing calls ``compute_charge_split`` before an invoice exists to show the
patient what they will owe; invoice creation uses ``plan_spec`` and the
same engine, so the quote and the invoice always agree.

All arithmetic lives in ``ledger_engines.coverage``.  Mutating methods
own the transaction: commit on success, roll back on failure.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_engines.coverage import (
    CopayType,
    CoverageCalculator,
    CoveragePlanSpec,
    CoverageRuleSpec,
    CoverageSplit,
    RuleType,
)
from ledger_kernel.db.types import ZERO
from ledger_kernel.exceptions import CoveragePlanNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_modules.coverage.orm import CoveragePlanModel, CoverageRuleModel

logger = get_logger("modules.coverage.service")


class CoverageService:
    """
    Coverage plans and rules for insurers.

    Transaction boundary: create_plan/add_rule commit; reads never write.
    """

    def __init__(self, session: Session, calculator: CoverageCalculator | None = None):
        self._session = session
        self._calculator = calculator or CoverageCalculator()

    # =========================================================================
    # Plans and rules
    # =========================================================================

    def create_plan(
        self,
        hospital_id: UUID,
        name: str,
        default_copay_rate: Decimal,
        actor_id: UUID,
        insurance_provider_id: UUID | None = None,
        max_copay_amount: Decimal | None = None,
    ) -> CoveragePlanSpec:
        """
        Create a plan with a default copay percentage (0-100).

        Raises:
            ValueError: rate outside 0..100 or negative cap.
        """
        try:
            CoveragePlanSpec(
                id="new",
                default_copay_rate=default_copay_rate,
                max_copay_amount=max_copay_amount,
            )
            plan = CoveragePlanModel(
                hospital_id=hospital_id,
                insurance_provider_id=insurance_provider_id,
                name=name,
                default_copay_rate=default_copay_rate,
                max_copay_amount=max_copay_amount,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(plan)
            self._session.flush()
            self._session.commit()
            logger.info(
                "coverage_plan_created",
                extra={
                    "plan_id": str(plan.id),
                    "hospital_id": str(hospital_id),
                    "default_copay_rate": str(default_copay_rate),
                },
            )
            return plan.to_spec()
        except Exception:
            self._session.rollback()
            raise

    def add_rule(
        self,
        plan_id: UUID,
        rule_type: RuleType,
        actor_id: UUID,
        copay_type: CopayType = CopayType.PERCENTAGE,
        copay_value: Decimal = ZERO,
        requires_approval: bool = False,
        service_category_id: str | None = None,
        service_item_id: str | None = None,
    ) -> CoverageRuleSpec:
        """
        Attach a rule to a plan.

        Raises:
            CoveragePlanNotFoundError, ValueError (invalid copay or target).
        """
        try:
            plan = self._get_plan(plan_id)
            CoverageRuleSpec(
                id="new",
                rule_type=RuleType(rule_type),
                copay_type=CopayType(copay_type),
                copay_value=copay_value,
                requires_approval=requires_approval,
                service_category_id=service_category_id,
                service_item_id=service_item_id,
            )
            rule = CoverageRuleModel(
                plan_id=plan.id,
                rule_type=RuleType(rule_type).value,
                copay_type=CopayType(copay_type).value,
                copay_value=copay_value,
                requires_approval=requires_approval,
                service_category_id=service_category_id,
                service_item_id=service_item_id,
                created_by_id=actor_id,
            )
            self._session.add(rule)
            self._session.flush()
            self._session.commit()
            self._session.refresh(plan)
            logger.info(
                "coverage_rule_added",
                extra={
                    "plan_id": str(plan_id),
                    "rule_id": str(rule.id),
                    "rule_type": RuleType(rule_type).value,
                },
            )
            return rule.to_spec()
        except Exception:
            self._session.rollback()
            raise

    def plan_spec(self, plan_id: UUID) -> CoveragePlanSpec:
        return self._get_plan(plan_id).to_spec()

    def _get_plan(self, plan_id: UUID) -> CoveragePlanModel:
        plan = self._session.get(CoveragePlanModel, plan_id)
        if plan is None:
            raise CoveragePlanNotFoundError(str(plan_id))
        return plan

    # =========================================================================
    # Prospective charges
    # =========================================================================

    def compute_charge_split(
        self,
        plan_id: UUID | None,
        service_category_id: str | None,
        service_item_id: str | None,
        amount: Decimal,
        pre_authorized: bool = False,
    ) -> CoverageSplit:
        """Split a prospective charge; ``plan_id=None`` is a cash patient."""
        plan = self.plan_spec(plan_id) if plan_id is not None else None
        return self._calculator.compute_share(
            plan,
            service_category_id=service_category_id,
            service_item_id=service_item_id,
            service_amount=amount,
            pre_authorized=pre_authorized,
        )
