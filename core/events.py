"""
Domain events for billing.

Immutable event objects that represent committed state changes. Services
publish what happened; handlers (email delivery, notifications) react
without the publisher knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (create, edit, send, paid, cancel)
- PaymentEvent: Ledger changes (recorded, deleted)

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BillingEvent:
    """Base class for all billing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(BillingEvent):
    """Events related to invoice lifecycle."""
    invoice: Any = None  # Invoice - using Any to avoid circular import


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """A new invoice was created in DRAFT status."""

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceUpdated(InvoiceEvent):
    """Invoice items/totals were edited; `removed_payments` were voided with it."""
    removed_payments: tuple = ()

    @classmethod
    def create(cls, invoice: Any, removed_payments: tuple = ()) -> "InvoiceUpdated":
        return cls(invoice=invoice, removed_payments=tuple(removed_payments))


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice was sent (or re-sent) to the client."""
    client: Any = None
    organization: Any = None

    @classmethod
    def create(cls, invoice: Any, client: Any, organization: Any = None) -> "InvoiceSent":
        return cls(invoice=invoice, client=client, organization=organization)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Payments now fully cover the invoice."""

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceCancelled(InvoiceEvent):
    """Invoice was cancelled; its payments were purged."""
    purged_payments: tuple = ()

    @classmethod
    def create(cls, invoice: Any, purged_payments: tuple = ()) -> "InvoiceCancelled":
        return cls(invoice=invoice, purged_payments=tuple(purged_payments))


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent(BillingEvent):
    """Events related to the payment ledger."""
    payment: Any = None
    invoice: Any = None


@dataclass(frozen=True)
class PaymentRecorded(PaymentEvent):
    """A payment was appended to an invoice's ledger."""

    @classmethod
    def create(cls, payment: Any, invoice: Any) -> "PaymentRecorded":
        return cls(payment=payment, invoice=invoice)


@dataclass(frozen=True)
class PaymentDeleted(PaymentEvent):
    """A payment was removed from an invoice's ledger."""

    @classmethod
    def create(cls, payment: Any, invoice: Any) -> "PaymentDeleted":
        return cls(payment=payment, invoice=invoice)
