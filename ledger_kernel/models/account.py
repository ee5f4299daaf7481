"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the per-hospital Chart of Accounts and the
    System Account Registry that maps fixed semantic keys to concrete accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Account.code is unique within a hospital (uq_account_hospital_code).
    - Exactly one mapping per (hospital, key) (uq_system_account_key).
    - Accounts are never deleted, only deactivated (db/immutability.py).

Failure modes:
    - IntegrityError on duplicate code or mapping (services check first and
      raise typed errors).

Audit relevance:
    Historical journal lines reference accounts immutably, so an account's
    identity must outlive its active use.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def default_normal_balance(self) -> "NormalBalance":
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


class SystemAccountKey(str, Enum):
    """
    Closed set of semantic account roles the engine posts to.

    Every key a posting needs must be mapped for the hospital before the
    posting is attempted; see AccountRegistry.resolve().
    """

    CASH_MAIN = "cash_main"
    BANK_MAIN = "bank_main"
    RECEIVABLE_PATIENTS = "receivable_patients"
    RECEIVABLE_INSURANCE = "receivable_insurance"
    REVENUE_OUTPATIENT = "revenue_outpatient"
    REVENUE_INPATIENT = "revenue_inpatient"
    REVENUE_PHARMACY = "revenue_pharmacy"
    REVENUE_LAB = "revenue_lab"
    REVENUE_RADIOLOGY = "revenue_radiology"
    DISCOUNT_ALLOWED = "discount_allowed"
    INVENTORY_DRUGS = "inventory_drugs"
    INVENTORY_SUPPLIES = "inventory_supplies"
    COGS_DRUGS = "cogs_drugs"
    COGS_SUPPLIES = "cogs_supplies"
    PAYABLE_SUPPLIERS = "payable_suppliers"
    CASH_SHORT_OVER = "cash_short_over"
    RETAINED_EARNINGS = "retained_earnings"


class Account(TrackedBase):
    """
    Chart of Accounts entry for one hospital.

    Contract:
        (hospital_id, code) is unique.  normal_balance is stored explicitly so
        that contra accounts (e.g. discounts allowed, a debit-normal revenue
        account) report with the right sign.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("hospital_id", "code", name="uq_account_hospital_code"),
        Index("idx_account_hospital", "hospital_id"),
        Index("idx_account_active", "is_active"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return NormalBalance(self.normal_balance) == NormalBalance.DEBIT


class SystemAccountMapping(TrackedBase):
    """Per-hospital lookup from a SystemAccountKey to exactly one Account."""

    __tablename__ = "system_account_mappings"

    __table_args__ = (
        UniqueConstraint("hospital_id", "key", name="uq_system_account_key"),
    )

    hospital_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    key: Mapped[SystemAccountKey] = mapped_column(String(50), nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    account: Mapped[Account] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<SystemAccountMapping {self.key} -> {self.account_id}>"
