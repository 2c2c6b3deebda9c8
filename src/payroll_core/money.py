"""Fixed-point money helpers.

Amounts are held as Decimal internally and cross every public boundary as
strings with exactly two decimal places. Rates keep up to four.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENTS = Decimal("0.01")
RATE_PRECISION = Decimal("0.0001")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, str, int]


def to_decimal(value: MoneyLike | None) -> Decimal:
    """Coerce a boundary value to Decimal. Floats are rejected."""
    if value is None:
        return Decimal("0")
    if isinstance(value, float):
        raise TypeError("Monetary values must not be binary floating point")
    return Decimal(value) if not isinstance(value, Decimal) else value


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_rate(rate: Decimal) -> Decimal:
    """Round a rate to 4 decimal places, half-up."""
    return rate.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal | None) -> str:
    """Render an amount as a 2-dp string."""
    return str(round_money(amount if amount is not None else ZERO))


def format_rate(rate: Decimal | None) -> str | None:
    """Render a rate with up to 4 decimal places, or None."""
    if rate is None:
        return None
    return str(round_rate(rate))


def percent_to_rate(percent: MoneyLike) -> Decimal:
    """Convert a stored percentage (e.g. 11) into a rate (0.11)."""
    return round_rate(to_decimal(percent) / Decimal("100"))
