"""Client balance roll-up, recomputed from the client's invoices each time."""

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from core.money import quantize_money, sum_money
from core.status import InvoiceStatus


@dataclass(frozen=True)
class ClientBalance:
    """Read model of what a client has been invoiced and has paid."""

    client_id: UUID
    total_invoiced: Decimal
    total_paid: Decimal
    outstanding: Decimal
    invoice_count: int
    counts_by_status: dict[str, int] = field(default_factory=dict)


def aggregate_client_balance(client_id: UUID, invoices: Iterable[Any]) -> ClientBalance:
    """
    Roll up a client's invoices.

    Cancelled invoices are counted in counts_by_status but contribute
    nothing to the money figures.
    """
    invoices = list(invoices)
    counts = Counter(InvoiceStatus(inv.status).value for inv in invoices)
    active = [inv for inv in invoices if InvoiceStatus(inv.status) != InvoiceStatus.CANCELLED]

    total_invoiced = quantize_money(sum_money(inv.total for inv in active))
    total_paid = quantize_money(sum_money(inv.amount_paid for inv in active))

    return ClientBalance(
        client_id=client_id,
        total_invoiced=total_invoiced,
        total_paid=total_paid,
        outstanding=total_invoiced - total_paid,
        invoice_count=len(invoices),
        counts_by_status={status.value: counts.get(status.value, 0) for status in InvoiceStatus},
    )
