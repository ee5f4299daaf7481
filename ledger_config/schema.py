"""
Ledger settings schema.

Typed, frozen representation of ``defaults/ledger.yaml``.  The loader
parses YAML into these types; services receive a ``LedgerSettings`` and
never read files themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ledger_kernel.domain.dtos import AccountDefinition
from ledger_kernel.models.account import AccountType, NormalBalance, SystemAccountKey


@dataclass(frozen=True)
class ToleranceSettings:
    claim_settlement: Decimal = Decimal("0.01")
    invoice_balance: Decimal = Decimal("0.001")

    def __post_init__(self) -> None:
        for name in ("claim_settlement", "invoice_balance"):
            value = getattr(self, name)
            if not isinstance(value, Decimal) or value < 0:
                raise ValueError(f"tolerances.{name} must be a non-negative Decimal, got {value!r}")


@dataclass(frozen=True)
class AgingSettings:
    bucket_bounds: tuple[int, ...] = (30, 60, 90, 120)

    def __post_init__(self) -> None:
        if not self.bucket_bounds:
            raise ValueError("aging.bucket_bounds cannot be empty")
        previous = -1
        for bound in self.bucket_bounds:
            if bound <= previous:
                raise ValueError(
                    f"aging.bucket_bounds must be strictly increasing: {self.bucket_bounds}"
                )
            previous = bound


@dataclass(frozen=True)
class RevenueSettings:
    """Service type -> revenue system key, with a fallback."""

    default_key: SystemAccountKey = SystemAccountKey.REVENUE_OUTPATIENT
    keys_by_service_type: dict[str, SystemAccountKey] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for service_type, key in self.keys_by_service_type.items():
            if not SystemAccountKey(key).value.startswith("revenue_"):
                raise ValueError(f"revenue key for {service_type} is not a revenue account: {key}")

    def key_for(self, service_type: str | None) -> SystemAccountKey:
        if service_type is None:
            return self.default_key
        return self.keys_by_service_type.get(service_type.upper(), self.default_key)


@dataclass(frozen=True)
class CashierSettings:
    post_over_short: bool = True


@dataclass(frozen=True)
class LedgerSettings:
    """
    Complete ledger configuration.

    Guarantees:
        - Every chart system_key is a valid SystemAccountKey and bound at
          most once; every account_type/normal_balance is valid.
        - ``checksum`` identifies the source document (empty for
          programmatic settings).
    """

    tolerances: ToleranceSettings = field(default_factory=ToleranceSettings)
    aging: AgingSettings = field(default_factory=AgingSettings)
    revenue: RevenueSettings = field(default_factory=RevenueSettings)
    cashier: CashierSettings = field(default_factory=CashierSettings)
    default_chart: tuple[AccountDefinition, ...] = ()
    version: int = 1
    checksum: str = ""

    def __post_init__(self) -> None:
        seen_codes: set[str] = set()
        seen_keys: set[str] = set()
        for definition in self.default_chart:
            AccountType(definition.account_type)
            if definition.normal_balance is not None:
                NormalBalance(definition.normal_balance)
            if definition.code in seen_codes:
                raise ValueError(f"default_chart code {definition.code} appears twice")
            seen_codes.add(definition.code)
            if definition.system_key is not None:
                key = SystemAccountKey(definition.system_key).value
                if key in seen_keys:
                    raise ValueError(f"default_chart binds system key {key} twice")
                seen_keys.add(key)

    @property
    def mapped_keys(self) -> frozenset[SystemAccountKey]:
        return frozenset(
            SystemAccountKey(d.system_key) for d in self.default_chart if d.system_key
        )
