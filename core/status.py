"""
Invoice status state machine.

Two kinds of transition exist:

- User transitions: explicit requests (send, mark overdue, cancel). Only the
  pairs listed in USER_TRANSITIONS are legal.
- Payment-driven transitions: into PARTIAL/PAID and back out of them. These
  are produced exclusively by core.reconciliation from payment math, never
  requested directly.

CANCELLED is terminal. Cancelling purges the payment ledger. A partially paid
invoice is never marked OVERDUE: PARTIAL means exactly 0 < paid < total.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from core.exceptions import ValidationError


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Statuses reachable only through payment reconciliation
PAYMENT_DRIVEN = frozenset({InvoiceStatus.PARTIAL, InvoiceStatus.PAID})

USER_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PARTIAL: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class StatusChange:
    """Outcome of planning a user-requested status change."""

    current: InvoiceStatus
    target: InvoiceStatus
    no_op: bool
    sent_at: datetime | None
    purge_payments: bool = False

    @property
    def clears_paid_at(self) -> bool:
        return self.purge_payments


def allowed_targets(current: InvoiceStatus) -> frozenset[InvoiceStatus]:
    """User-requestable statuses from `current`."""
    return USER_TRANSITIONS[current]


def plan_transition(
    current: InvoiceStatus,
    target: InvoiceStatus,
    sent_at: datetime | None,
    now: datetime,
) -> StatusChange:
    """
    Validate a user status request and describe its side effects.

    Args:
        current: Invoice's status right now
        target: Requested status
        sent_at: Invoice's existing sent timestamp (kept if already set)
        now: Timestamp to use for a first send

    Returns:
        StatusChange; `no_op` is True when target equals current

    Raises:
        ValidationError: If target is payment-driven or not reachable
    """
    current = InvoiceStatus(current)
    target = InvoiceStatus(target)

    if target in PAYMENT_DRIVEN:
        raise ValidationError(
            f"Status '{target.value}' is set by recording payments, not directly"
        )

    if target == current:
        return StatusChange(current=current, target=target, no_op=True, sent_at=sent_at)

    if target not in USER_TRANSITIONS[current]:
        raise ValidationError(
            f"Cannot change invoice status from '{current.value}' to '{target.value}'"
        )

    new_sent_at = sent_at
    if target == InvoiceStatus.SENT and sent_at is None:
        new_sent_at = now

    return StatusChange(
        current=current,
        target=target,
        no_op=False,
        sent_at=new_sent_at,
        purge_payments=target == InvoiceStatus.CANCELLED,
    )
