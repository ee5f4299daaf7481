"""
Settings loader (``ledger_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into ``LedgerSettings``.

Invariants enforced
-------------------
* Money-like values are parsed from strings into ``Decimal``; YAML floats
  are rejected so no binary float reaches a tolerance.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed document.

Failure modes
-------------
* Missing file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Invalid values -> ``ValueError`` from parsing or schema validation.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    AgingSettings,
    CashierSettings,
    LedgerSettings,
    RevenueSettings,
    ToleranceSettings,
)
from ledger_kernel.domain.dtos import AccountDefinition
from ledger_kernel.models.account import SystemAccountKey


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        raise ValueError(f"{name} must be quoted (got float {value!r})")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} is not a decimal: {value!r}") from None


def parse_chart(rows: list[dict[str, Any]]) -> tuple[AccountDefinition, ...]:
    return tuple(
        AccountDefinition(
            code=str(row["code"]),
            name=row["name"],
            account_type=row["account_type"],
            normal_balance=row.get("normal_balance"),
            system_key=row.get("system_key"),
        )
        for row in rows
    )


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Build ``LedgerSettings`` from a parsed YAML document.  Absent sections
    take schema defaults.
    """
    tol = data.get("tolerances", {})
    tolerances = ToleranceSettings(
        claim_settlement=parse_decimal(
            tol.get("claim_settlement", "0.01"), "tolerances.claim_settlement"
        ),
        invoice_balance=parse_decimal(
            tol.get("invoice_balance", "0.001"), "tolerances.invoice_balance"
        ),
    )

    aging = AgingSettings(
        bucket_bounds=tuple(int(b) for b in data.get("aging", {}).get("bucket_bounds", (30, 60, 90, 120)))
    )

    rev = data.get("revenue", {})
    revenue = RevenueSettings(
        default_key=SystemAccountKey(rev.get("default_key", SystemAccountKey.REVENUE_OUTPATIENT.value)),
        keys_by_service_type={
            str(service_type).upper(): SystemAccountKey(key)
            for service_type, key in rev.get("keys_by_service_type", {}).items()
        },
    )

    cashier = CashierSettings(
        post_over_short=bool(data.get("cashier", {}).get("post_over_short", True)),
    )

    return LedgerSettings(
        tolerances=tolerances,
        aging=aging,
        revenue=revenue,
        cashier=cashier,
        default_chart=parse_chart(data.get("default_chart", [])),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
    )
