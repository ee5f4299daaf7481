"""
Module: ledger_engines.coverage
Responsibility:
    Split a service amount between patient and insurer under a coverage
    plan: item rule, then category rule, then the plan default rate.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The module layer
    (ledger_modules.coverage) loads plans from the database and converts
    them to the specs defined here.

Invariants enforced:
    - patient_share + insurance_share == round_money(service_amount)
      exactly, for every plan, rule and amount.  Rounding is half away
      from zero at three fractional digits, and any remainder goes to the
      larger share.
    - Both shares are non-negative and never exceed the amount.

Failure modes:
    - ValueError on a negative amount, a percentage outside 0..100, or a
      negative fixed copay.

Audit relevance:
    ``rule_applied`` names the rule (or default) that produced each split
    so invoice lines can be traced back to plan terms.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Sequence

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.logging_config import get_logger
from ledger_engines.tracer import traced_engine

logger = get_logger("engines.coverage")

HUNDRED = Decimal("100")

CASH_PATIENT = "CASH_PATIENT"
PLAN_DEFAULT = "PLAN_DEFAULT"


class RuleType(str, Enum):
    INCLUSION = "INCLUSION"
    EXCLUSION = "EXCLUSION"


class CopayType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


@dataclass(frozen=True)
class CoverageRuleSpec:
    """
    One plan rule, bound to either a service item or a service category.

    ``copay_value`` is a percentage (0-100) for PERCENTAGE rules and an
    amount for FIXED_AMOUNT rules.
    """

    id: str
    rule_type: RuleType
    copay_type: CopayType = CopayType.PERCENTAGE
    copay_value: Decimal = ZERO
    requires_approval: bool = False
    service_category_id: str | None = None
    service_item_id: str | None = None

    def __post_init__(self) -> None:
        if self.service_category_id is None and self.service_item_id is None:
            raise ValueError(f"Rule {self.id} must target a service item or category")
        if not isinstance(self.copay_value, Decimal):
            raise ValueError("copay_value must be Decimal")
        if self.copay_value < 0:
            raise ValueError(f"Rule {self.id}: copay cannot be negative")
        if CopayType(self.copay_type) == CopayType.PERCENTAGE and self.copay_value > HUNDRED:
            raise ValueError(f"Rule {self.id}: copay percentage above 100")

    @property
    def is_item_rule(self) -> bool:
        return self.service_item_id is not None


@dataclass(frozen=True)
class CoveragePlanSpec:
    """A plan: default copay percentage, optional patient cap, and rules."""

    id: str
    default_copay_rate: Decimal
    max_copay_amount: Decimal | None = None
    rules: tuple[CoverageRuleSpec, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not ZERO <= self.default_copay_rate <= HUNDRED:
            raise ValueError(f"Plan {self.id}: default copay rate must be within 0..100")
        if self.max_copay_amount is not None and self.max_copay_amount < 0:
            raise ValueError(f"Plan {self.id}: max copay cannot be negative")

    def find_rule(
        self,
        service_category_id: str | None,
        service_item_id: str | None,
    ) -> CoverageRuleSpec | None:
        """Item rule first, then category rule."""
        if service_item_id is not None:
            for rule in self.rules:
                if rule.service_item_id == service_item_id:
                    return rule
        if service_category_id is not None:
            for rule in self.rules:
                if not rule.is_item_rule and rule.service_category_id == service_category_id:
                    return rule
        return None


@dataclass(frozen=True)
class CoverageSplit:
    patient_share: Decimal
    insurance_share: Decimal
    requires_approval: bool
    rule_applied: str

    @property
    def total(self) -> Decimal:
        return self.patient_share + self.insurance_share

    @property
    def covered(self) -> bool:
        return self.insurance_share > 0


def split_exact(amount: Decimal, raw_patient_share: Decimal) -> tuple[Decimal, Decimal]:
    """
    Round both shares and push the rounding remainder onto the larger one.

    ``amount`` must already be at currency precision.
    """
    patient = round_money(raw_patient_share)
    insurance = round_money(amount - raw_patient_share)
    remainder = amount - patient - insurance
    if remainder:
        if patient >= insurance:
            patient += remainder
        else:
            insurance += remainder
    return patient, insurance


class CoverageCalculator:
    """
    Computes patient/insurer splits.

    Contract:
        Pure -- plans and rules arrive as specs, no database access.
    """

    @traced_engine("coverage", "1.0", fingerprint_fields=("service_amount", "service_item_id"))
    def compute_share(
        self,
        plan: CoveragePlanSpec | None,
        service_category_id: str | None = None,
        service_item_id: str | None = None,
        service_amount: Decimal = ZERO,
        pre_authorized: bool = False,
    ) -> CoverageSplit:
        """
        Split ``service_amount`` under ``plan``.

        Args:
            plan: Coverage plan, or None for a cash patient.
            service_category_id: Category of the service, if any.
            service_item_id: The service item, if any.
            service_amount: Gross amount for the service.
            pre_authorized: An approved pre-authorization exists, so a
                rule's approval requirement is already met.

        Raises:
            ValueError: negative amount.
        """
        if not isinstance(service_amount, Decimal):
            raise ValueError("service_amount must be Decimal")
        if service_amount < 0:
            raise ValueError(f"Service amount cannot be negative: {service_amount}")
        amount = round_money(service_amount)

        if plan is None:
            return CoverageSplit(amount, ZERO, False, CASH_PATIENT)

        rule = plan.find_rule(service_category_id, service_item_id)

        if rule is not None and RuleType(rule.rule_type) == RuleType.EXCLUSION:
            logger.debug(
                "coverage_excluded",
                extra={"plan_id": plan.id, "rule_id": rule.id},
            )
            return CoverageSplit(amount, ZERO, False, f"EXCLUSION:{rule.id}")

        if rule is None:
            raw_patient = amount * plan.default_copay_rate / HUNDRED
            applied = PLAN_DEFAULT
            requires_approval = False
        else:
            if CopayType(rule.copay_type) == CopayType.PERCENTAGE:
                raw_patient = amount * rule.copay_value / HUNDRED
            else:
                raw_patient = rule.copay_value
            applied = f"RULE:{rule.id}"
            requires_approval = rule.requires_approval and not pre_authorized

        if plan.max_copay_amount is not None:
            raw_patient = min(raw_patient, plan.max_copay_amount)
        raw_patient = min(raw_patient, amount)

        patient, insurance = split_exact(amount, raw_patient)
        return CoverageSplit(patient, insurance, requires_approval, applied)

    def compute_lines(
        self,
        plan: CoveragePlanSpec | None,
        lines: Sequence[tuple[str | None, str | None, Decimal]],
        pre_authorized: bool = False,
    ) -> list[CoverageSplit]:
        """compute_share over (category, item, amount) triples."""
        return [
            self.compute_share(
                plan,
                service_category_id=category,
                service_item_id=item,
                service_amount=amount,
                pre_authorized=pre_authorized,
            )
            for category, item, amount in lines
        ]
