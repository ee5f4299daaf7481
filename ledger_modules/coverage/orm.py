"""
Coverage ORM Models (``ledger_modules.coverage.orm``).

Responsibility
--------------
Persistence for insurance coverage plans and their rules.  ``to_spec()``
converts rows into the frozen specs consumed by
``ledger_engines.coverage``.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db.base``
and ``ledger_engines.coverage``.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_engines.coverage import CopayType, CoveragePlanSpec, CoverageRuleSpec, RuleType
from ledger_kernel.db.base import TrackedBase, UUIDString


class CoveragePlanModel(TrackedBase):
    """
    An insurer's coverage plan.

    Guarantees:
        - default_copay_rate is a percentage in 0..100.
        - max_copay_amount, when set, caps the patient share per service.
    """

    __tablename__ = "coverage_plans"

    __table_args__ = (
        Index("idx_coverage_plans_hospital", "hospital_id"),
        Index("idx_coverage_plans_provider", "insurance_provider_id"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    insurance_provider_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("insurance_providers.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_copay_rate: Mapped[Decimal] = mapped_column(nullable=False)
    max_copay_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    rules: Mapped[list["CoverageRuleModel"]] = relationship(
        back_populates="plan",
        lazy="selectin",
        order_by="CoverageRuleModel.created_at",
    )

    def to_spec(self) -> CoveragePlanSpec:
        return CoveragePlanSpec(
            id=str(self.id),
            default_copay_rate=self.default_copay_rate,
            max_copay_amount=self.max_copay_amount,
            rules=tuple(rule.to_spec() for rule in self.rules),
        )

    def __repr__(self) -> str:
        return f"<CoveragePlanModel {self.name} {self.default_copay_rate}%>"


class CoverageRuleModel(TrackedBase):
    """A per-item or per-category rule of a coverage plan."""

    __tablename__ = "coverage_rules"

    __table_args__ = (
        Index("idx_coverage_rules_plan", "plan_id"),
    )

    plan_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("coverage_plans.id"), nullable=False
    )
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    copay_type: Mapped[str] = mapped_column(String(20), nullable=False)
    copay_value: Mapped[Decimal] = mapped_column(nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    service_category_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    service_item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    plan: Mapped[CoveragePlanModel] = relationship(back_populates="rules")

    def to_spec(self) -> CoverageRuleSpec:
        return CoverageRuleSpec(
            id=str(self.id),
            rule_type=RuleType(self.rule_type),
            copay_type=CopayType(self.copay_type),
            copay_value=self.copay_value,
            requires_approval=self.requires_approval,
            service_category_id=self.service_category_id,
            service_item_id=self.service_item_id,
        )
