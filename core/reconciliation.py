"""
Invoice reconciliation.

Single source of truth for amount_paid, balance_due and status. Every
mutation that touches totals or payments (create, edit, record payment,
delete payment, cancel) funnels through `reconcile`.

Editing an invoice that already has payments is a two-step protocol:

    propose_edit(new_total, payments)
        -> EditApplied                  nothing to remove, safe to save
        -> NeedsPaymentRemoval          user must choose payments to void

    confirm_removal(new_total, payments, ids_to_remove)
        -> EditApplied                  save, deleting those payments
        -> Rejected                     selection doesn't cover the excess

Payments are never picked automatically.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Sequence

from core.exceptions import ValidationError
from core.ledger import select_payments, total_paid
from core.money import ZERO, quantize_money, sum_money
from core.status import InvoiceStatus, PAYMENT_DRIVEN
from utils.timezone import now_utc


@dataclass(frozen=True)
class ReconciledState:
    """Payment-derived invoice fields, ready to persist."""

    amount_paid: Decimal
    balance_due: Decimal
    signed_balance: Decimal
    status: InvoiceStatus
    paid_at: datetime | None

    @property
    def is_overpaid(self) -> bool:
        return self.signed_balance < ZERO


def reconcile(
    total: Decimal,
    payment_amounts: Iterable[Decimal],
    previous_status: InvoiceStatus,
    sent_at: datetime | None = None,
    paid_at: datetime | None = None,
    now: datetime | None = None,
) -> ReconciledState:
    """
    Derive amount_paid, balance_due and status from total and payments.

    Status moves to PAID when payments cover the total, to PARTIAL when they
    cover part of it. An invoice that was PAID/PARTIAL and no longer has any
    payments falls back to SENT (if it was ever sent) or DRAFT. Any other
    status is left alone.

    balance_due is clamped at zero; signed_balance keeps the raw difference.
    """
    total = quantize_money(total)
    previous_status = InvoiceStatus(previous_status)

    if previous_status == InvoiceStatus.CANCELLED:
        return ReconciledState(
            amount_paid=ZERO,
            balance_due=total,
            signed_balance=total,
            status=InvoiceStatus.CANCELLED,
            paid_at=None,
        )

    amount_paid = quantize_money(sum_money(payment_amounts))
    signed_balance = total - amount_paid

    if amount_paid > ZERO and signed_balance <= ZERO:
        status = InvoiceStatus.PAID
    elif amount_paid > ZERO:
        status = InvoiceStatus.PARTIAL
    elif previous_status in PAYMENT_DRIVEN:
        status = InvoiceStatus.SENT if sent_at is not None else InvoiceStatus.DRAFT
    else:
        status = previous_status

    if status != InvoiceStatus.PAID:
        new_paid_at = None
    elif previous_status == InvoiceStatus.PAID and paid_at is not None:
        new_paid_at = paid_at
    else:
        new_paid_at = now or now_utc()

    return ReconciledState(
        amount_paid=amount_paid,
        balance_due=max(ZERO, signed_balance),
        signed_balance=signed_balance,
        status=status,
        paid_at=new_paid_at,
    )


# =============================================================================
# EDIT-TIME RECONCILIATION
# =============================================================================


@dataclass(frozen=True)
class EditApplied:
    """Edit can be saved; `payments_to_remove` are deleted with it."""

    new_total: Decimal
    payments_to_remove: tuple[Any, ...] = ()
    remaining_paid: Decimal = ZERO


@dataclass(frozen=True)
class NeedsPaymentRemoval:
    """Existing payments exceed the new total by `excess_amount`."""

    new_total: Decimal
    amount_paid: Decimal
    excess_amount: Decimal
    payments: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Rejected:
    """Removal selection doesn't bring payments within the new total."""

    reason: str


def propose_edit(new_total: Decimal, payments: Sequence[Any]) -> EditApplied | NeedsPaymentRemoval:
    """Phase one: decide whether the edit needs payments removed first."""
    new_total = quantize_money(new_total)
    amount_paid = total_paid(payments)

    if amount_paid <= new_total:
        return EditApplied(new_total=new_total, remaining_paid=amount_paid)

    return NeedsPaymentRemoval(
        new_total=new_total,
        amount_paid=amount_paid,
        excess_amount=amount_paid - new_total,
        payments=tuple(payments),
    )


def confirm_removal(
    new_total: Decimal,
    payments: Sequence[Any],
    payment_ids_to_remove: Iterable[Any],
) -> EditApplied | Rejected:
    """
    Phase two: validate the user's removal selection.

    The selection must cover the excess and leave the remaining paid amount
    at or below the new total. Ids that aren't on this invoice's ledger
    reject the whole selection.
    """
    new_total = quantize_money(new_total)
    amount_paid = total_paid(payments)
    excess = max(ZERO, amount_paid - new_total)

    try:
        selected = select_payments(payments, payment_ids_to_remove)
    except ValidationError as e:
        return Rejected(reason=str(e))

    removed = total_paid(selected)
    remaining = amount_paid - removed

    if removed < excess:
        return Rejected(
            reason=(
                f"Selected payments total {removed}, but at least {excess} "
                "must be removed"
            )
        )
    if remaining > new_total:
        return Rejected(
            reason=f"Remaining payments {remaining} exceed new total {new_total}"
        )

    return EditApplied(
        new_total=new_total,
        payments_to_remove=tuple(selected),
        remaining_paid=remaining,
    )
