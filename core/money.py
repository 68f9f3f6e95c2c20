"""
Fixed-point money arithmetic.

Every amount is a Decimal. Rounding to cents happens once, at the point a
value becomes part of a stored record, using ROUND_HALF_UP. Intermediate
sums are exact.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Convert an incoming amount to Decimal without precision loss.

    Floats are refused: by the time a float exists the binary rounding
    error is already baked in.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        raise ValidationError(
            f"Amounts must be Decimal, int or str, got float {value!r}"
        )
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"Invalid amount: {value!r}")

    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return result


def quantize_money(value: Decimal | int | str) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal | int | str]) -> Decimal:
    """Exact sum, no rounding."""
    total = Decimal(0)
    for value in values:
        total += to_decimal(value)
    return total


def format_money(value: Decimal | int | str) -> str:
    """Fixed 2-decimal string, e.g. '1234.50'."""
    return f"{quantize_money(value):.2f}"
