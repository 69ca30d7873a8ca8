"""
Fixed-point money helpers.

All monetary values in the engine are ``Decimal`` quantized to cents.
Rates are ``Decimal`` fractions (0.0725 = 7.25%). Floats are rejected so
that no binary rounding can leak into a tax figure.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, str]


def to_decimal(value: MoneyLike, field_name: str = "value") -> Decimal:
    """Convert an int, str or Decimal to Decimal. Floats are refused."""
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"{field_name} must be Decimal, int or str, not {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"{field_name} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite: {value!r}")
    return result


def round_money(amount: Decimal) -> Decimal:
    """Round to the nearest cent, half away from zero."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: MoneyLike, field_name: str = "amount") -> Decimal:
    return round_money(to_decimal(value, field_name))


def floor_zero(amount: Decimal) -> Decimal:
    return amount if amount > 0 else ZERO


def format_money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


def format_rate(rate: Decimal) -> str:
    return f"{rate * 100:.3f}%"
