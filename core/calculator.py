"""
Invoice total calculation.

Line rates must already be at cents precision. The subtotal is an exact sum and
tax is rounded once, half-up, from the exact subtotal.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from core.exceptions import ValidationError
from core.money import ZERO, quantize_money, sum_money, to_decimal

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class LineInput:
    """One invoice line as entered."""

    description: str
    quantity: int
    rate: Decimal


@dataclass(frozen=True)
class CalculatedLine:
    description: str
    quantity: int
    rate: Decimal
    amount: Decimal
    sort_order: int


@dataclass(frozen=True)
class InvoiceTotals:
    """Derived financial fields for a set of lines and a tax rate."""

    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    lines: tuple[CalculatedLine, ...]


def _validate_line(index: int, line: LineInput) -> None:
    if not line.description or not line.description.strip():
        raise ValidationError(f"Item {index + 1}: description is required")
    if isinstance(line.quantity, bool) or not isinstance(line.quantity, int):
        raise ValidationError(f"Item {index + 1}: quantity must be a whole number")
    if line.quantity < 1:
        raise ValidationError(f"Item {index + 1}: quantity must be at least 1")
    rate = to_decimal(line.rate)
    if rate < 0:
        raise ValidationError(f"Item {index + 1}: rate must be 0 or greater")
    if quantize_money(rate) != rate:
        raise ValidationError(f"Item {index + 1}: rate must have at most 2 decimal places")


def validate_tax_rate(tax_rate: Decimal | int | str) -> Decimal:
    """Return tax rate as Decimal, rejecting anything outside [0, 100]."""
    rate = to_decimal(tax_rate)
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(f"Tax rate must be between 0 and 100, got {rate}")
    return rate


def calculate_line_amount(quantity: int, rate: Decimal | int | str) -> Decimal:
    """quantity * rate, rounded half-up to cents."""
    return quantize_money(quantity * to_decimal(rate))


def calculate_totals(
    items: Sequence[LineInput],
    tax_rate: Decimal | int | str,
) -> InvoiceTotals:
    """
    Compute subtotal, tax and total for an invoice.

    Args:
        items: Lines in display order (at least one)
        tax_rate: Percentage in [0, 100]

    Returns:
        InvoiceTotals with every amount at 2 decimal places and
        total == subtotal + tax_amount exactly

    Raises:
        ValidationError: Empty item list, bad quantity/rate, bad tax rate
    """
    if not items:
        raise ValidationError("At least one item is required")

    rate = validate_tax_rate(tax_rate)

    for index, line in enumerate(items):
        _validate_line(index, line)

    lines = tuple(
        CalculatedLine(
            description=line.description.strip(),
            quantity=line.quantity,
            rate=quantize_money(line.rate),
            amount=calculate_line_amount(line.quantity, line.rate),
            sort_order=index,
        )
        for index, line in enumerate(items)
    )

    # Rates are held at cents precision, so line amounts are exact and the
    # subtotal is their exact sum. Tax is the only figure that rounds.
    subtotal = quantize_money(sum_money(line.amount for line in lines))
    tax_amount = quantize_money(subtotal * rate / HUNDRED) if rate else ZERO
    total = subtotal + tax_amount

    return InvoiceTotals(
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        total=total,
        lines=lines,
    )
