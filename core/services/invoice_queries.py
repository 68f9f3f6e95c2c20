"""
Row-level helpers shared by the invoice and payment services.

All functions take an open Transaction; none of them commit.
"""

from datetime import datetime
from uuid import UUID

from clients.postgres_client import Transaction
from core.exceptions import NotFoundError, OwnershipError
from core.models import Invoice, InvoiceItem, Payment
from core.reconciliation import ReconciledState
from utils.request_context import get_current_organization_id


def check_owned(row: dict | None, entity: str, entity_id: UUID) -> dict:
    """
    Ensure a fetched row exists and belongs to the active organization.

    Raises:
        NotFoundError: Row missing (or hidden by RLS)
        OwnershipError: Row belongs to another organization
    """
    if row is None:
        raise NotFoundError(f"{entity} {entity_id} not found")
    if row["organization_id"] != get_current_organization_id():
        raise OwnershipError(f"{entity} {entity_id} not found")
    return row


def lock_invoice(tx: Transaction, invoice_id: UUID) -> Invoice:
    """
    Fetch an invoice and hold its row lock until the transaction ends.

    Every financial mutation takes this lock first, so concurrent writers
    to the same invoice serialize here and each one sees committed payments.
    """
    row = tx.execute_single(
        "SELECT * FROM invoices WHERE id = %s FOR UPDATE",
        (invoice_id,)
    )
    return Invoice.model_validate(check_owned(row, "Invoice", invoice_id))


def fetch_payments(tx: Transaction, invoice_id: UUID) -> list[Payment]:
    """Payments on an invoice, newest payment date first."""
    rows = tx.execute(
        """
        SELECT * FROM payments
        WHERE invoice_id = %s
        ORDER BY payment_date DESC, created_at DESC
        """,
        (invoice_id,)
    )
    return [Payment.model_validate(row) for row in rows]


def fetch_items(tx: Transaction, invoice_id: UUID) -> list[InvoiceItem]:
    """Line items in display order."""
    rows = tx.execute(
        "SELECT * FROM invoice_items WHERE invoice_id = %s ORDER BY sort_order ASC",
        (invoice_id,)
    )
    return [InvoiceItem.model_validate(row) for row in rows]


def write_reconciled_state(
    tx: Transaction,
    invoice_id: UUID,
    state: ReconciledState,
    now: datetime,
) -> Invoice:
    """Persist payment-derived fields and return the updated invoice."""
    row = tx.execute_single(
        """
        UPDATE invoices
        SET amount_paid = %s, balance_due = %s, status = %s, paid_at = %s, updated_at = %s
        WHERE id = %s
        RETURNING *
        """,
        (
            state.amount_paid, state.balance_due, state.status.value,
            state.paid_at, now, invoice_id
        )
    )
    return Invoice.model_validate(row)


def delete_payments(tx: Transaction, invoice_id: UUID, payment_ids: list[UUID]) -> int:
    """Delete the given payments from one invoice's ledger. Returns rows deleted."""
    if not payment_ids:
        return 0
    tx.execute(
        "DELETE FROM payments WHERE invoice_id = %s AND id = ANY(%s::uuid[])",
        (invoice_id, list(payment_ids))
    )
    return tx.rowcount
