"""
Module: ledger_kernel.db.types
Responsibility: The exact money column type and the rounding helpers every
    model and service shares.  Centralizes precision so that the balance and
    split invariants can be checked with plain ``==`` on ``Decimal`` values.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and the engines.  MUST NOT import from those layers.

Invariants enforced:
    - Money is stored as an integer count of thousandths (minor units).  No
      float ever touches a monetary column, on any database backend.
    - MONEY_DECIMAL_PLACES (3) is the single source of currency precision.
      round_money() is the ONLY sanctioned rounding function.

Failure modes:
    - ValueError from MoneyAmount when a value carries more fractional digits
      than the currency allows (the caller forgot to round).
    - decimal.InvalidOperation from money() on non-numeric input.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

# Observed currency precision: thousandths.
MONEY_DECIMAL_PLACES = 3

# Half away from zero on Decimal.
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.000")


class MoneyAmount(TypeDecorator):
    """
    Exact money type stored as BIGINT minor units.

    Contract:
        Binds ``Decimal`` (or int/str) amounts as integers scaled by
        10 ** MONEY_DECIMAL_PLACES and loads them back as ``Decimal`` with
        exactly MONEY_DECIMAL_PLACES fractional digits.

    Guarantees:
        - Round trip is lossless for every value with at most three
          fractional digits.
        - SUM() over the column is exact on SQLite and PostgreSQL alike.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        scaled = Decimal(value).scaleb(MONEY_DECIMAL_PLACES)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"Amount {value} has more than {MONEY_DECIMAL_PLACES} fractional digits"
            )
        return int(scaled)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-MONEY_DECIMAL_PLACES)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the currency precision.

    This is the ONLY sanctioned rounding function for financial values.
    Rounding is applied at documented boundaries only (coverage split,
    aging totals); postings must already be exact.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def money(value: Decimal | int | str) -> Decimal:
    """Build a money Decimal from int/str/Decimal input, rounded to precision."""
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return round_money(Decimal(value))


def has_money_precision(value: Decimal) -> bool:
    """True if ``value`` needs no rounding to fit the currency precision."""
    return round_money(value) == value
