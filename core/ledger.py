"""
Payment ledger rules.

The ledger is the set of payments recorded against one invoice. Amounts
are only ever appended or deleted; amount_paid is always re-derived from
what's left.
"""

from decimal import Decimal
from typing import Any, Iterable, Sequence

from core.exceptions import ValidationError
from core.money import ZERO, quantize_money, sum_money, to_decimal


def total_paid(payments: Iterable[Any]) -> Decimal:
    """Sum of payment amounts at cents precision."""
    return quantize_money(sum_money(p.amount for p in payments))


def check_payment_amount(amount: Decimal | int | str, balance_due: Decimal) -> Decimal:
    """
    Validate a new payment against the invoice's current balance.

    Args:
        amount: Payment amount as entered
        balance_due: Balance computed inside the same transaction

    Returns:
        The amount at cents precision

    Raises:
        ValidationError: Non-positive amount, sub-cent precision, or overpayment
    """
    value = to_decimal(amount)
    if value <= ZERO:
        raise ValidationError("Payment amount must be greater than 0")

    quantized = quantize_money(value)
    if quantized != value:
        raise ValidationError(f"Payment amount {value} has more than 2 decimal places")

    if quantized > balance_due:
        raise ValidationError(
            f"Payment amount {quantized} cannot exceed balance due {balance_due}"
        )
    return quantized


def order_for_display(payments: Sequence[Any]) -> list[Any]:
    """Newest payment date first; ties broken by most recently recorded."""
    return sorted(
        payments,
        key=lambda p: (p.payment_date, p.created_at),
        reverse=True,
    )


def select_payments(payments: Sequence[Any], payment_ids: Iterable[Any]) -> list[Any]:
    """
    Resolve ids to payments on this ledger.

    Raises:
        ValidationError: If any id isn't on the ledger
    """
    by_id = {p.id: p for p in payments}
    selected = []
    seen = set()
    for payment_id in payment_ids:
        if payment_id in seen:
            continue
        seen.add(payment_id)
        payment = by_id.get(payment_id)
        if payment is None:
            raise ValidationError(f"Payment {payment_id} is not recorded on this invoice")
        selected.append(payment)
    return selected
