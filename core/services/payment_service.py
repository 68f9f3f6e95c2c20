"""
Payment service: the only way money enters or leaves an invoice's ledger.

Recording and deleting both lock the invoice row first, so two payments
racing for the last of a balance serialize and the second one is checked
against what the first left behind.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentRecorded, PaymentDeleted
from core.exceptions import NotFoundError, ValidationError
from core.ledger import check_payment_amount
from core.models import Invoice, Payment, PaymentCreate, PaymentStats
from core.reconciliation import reconcile
from core.services.client_service import ClientService
from core.services.invoice_queries import (
    check_owned, fetch_items, fetch_payments, lock_invoice, write_reconciled_state,
)
from core.services.retry import retry_on_conflict
from core.status import InvoiceStatus
from utils.request_context import get_current_organization_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for payment ledger operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        client_service: ClientService,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.clients = client_service

    @retry_on_conflict
    def record_payment(self, invoice_id: UUID, data: PaymentCreate) -> tuple[Payment, Invoice]:
        """
        Record a payment against an invoice.

        The amount is checked against the balance computed from the ledger
        inside this transaction, never against a value the caller read
        earlier.

        Args:
            invoice_id: Invoice UUID
            data: Payment details

        Returns:
            Tuple of (created payment, invoice after reconciliation)

        Raises:
            ValidationError: Non-positive amount, overpayment, cancelled invoice
            NotFoundError: Invoice not found
        """
        user_id = get_current_user_id()
        organization_id = get_current_organization_id()
        now = now_utc()

        with self.postgres.transaction() as tx:
            invoice = lock_invoice(tx, invoice_id)
            if invoice.is_cancelled:
                raise ValidationError(
                    f"Cannot record a payment on cancelled invoice {invoice.invoice_number}"
                )

            ledger = fetch_payments(tx, invoice_id)
            before = reconcile(
                invoice.total,
                [p.amount for p in ledger],
                invoice.status,
                sent_at=invoice.sent_at,
                paid_at=invoice.paid_at,
                now=now,
            )
            amount = check_payment_amount(data.amount, before.balance_due)

            row = tx.execute_single(
                """
                INSERT INTO payments (
                    id, invoice_id, organization_id, amount, payment_date,
                    payment_method, reference, notes, created_by, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid4(), invoice_id, organization_id, amount, data.payment_date,
                    data.payment_method.value, data.reference, data.notes, user_id, now
                )
            )
            payment = Payment.model_validate(row)

            after = reconcile(
                invoice.total,
                [p.amount for p in ledger] + [payment.amount],
                invoice.status,
                sent_at=invoice.sent_at,
                paid_at=invoice.paid_at,
                now=now,
            )
            updated = write_reconciled_state(tx, invoice_id, after, now)
            updated.items = fetch_items(tx, invoice_id)
            self.clients.recalculate_balance(tx, invoice.client_id)

        logger.info(
            f"Recorded payment {payment.id} of {payment.amount} on invoice "
            f"{updated.invoice_number} ({invoice.status.value} -> {updated.status.value})"
        )

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            entity_name=updated.invoice_number,
            action=AuditAction.PAYMENT_RECORDED,
            changes={
                "payment": payment.model_dump(mode="json"),
                "amount_paid": {"old": invoice.amount_paid, "new": updated.amount_paid},
                "status": {"old": invoice.status.value, "new": updated.status.value},
            }
        )

        self.event_bus.publish(PaymentRecorded.create(payment=payment, invoice=updated))
        if updated.is_paid and invoice.status != InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return payment, updated

    @retry_on_conflict
    def delete_payment(self, payment_id: UUID) -> Invoice:
        """
        Remove a payment and re-derive the invoice's paid amount and status.

        A PAID invoice drops to PARTIAL, or back to SENT/DRAFT when no
        payments are left.

        Returns:
            Invoice after reconciliation

        Raises:
            NotFoundError: Payment not found
        """
        now = now_utc()

        with self.postgres.transaction() as tx:
            row = tx.execute_single(
                "SELECT id, invoice_id, organization_id FROM payments WHERE id = %s",
                (payment_id,)
            )
            check_owned(row, "Payment", payment_id)
            invoice_id = row["invoice_id"]

            invoice = lock_invoice(tx, invoice_id)

            # Lock taken: the payment may have been deleted while we waited
            ledger = fetch_payments(tx, invoice_id)
            payment = next((p for p in ledger if p.id == payment_id), None)
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")

            tx.execute("DELETE FROM payments WHERE id = %s", (payment_id,))

            state = reconcile(
                invoice.total,
                [p.amount for p in ledger if p.id != payment_id],
                invoice.status,
                sent_at=invoice.sent_at,
                paid_at=invoice.paid_at,
                now=now,
            )
            updated = write_reconciled_state(tx, invoice_id, state, now)
            updated.items = fetch_items(tx, invoice_id)
            self.clients.recalculate_balance(tx, invoice.client_id)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            entity_name=updated.invoice_number,
            action=AuditAction.PAYMENT_DELETED,
            changes={
                "payment": payment.model_dump(mode="json"),
                "amount_paid": {"old": invoice.amount_paid, "new": updated.amount_paid},
                "status": {"old": invoice.status.value, "new": updated.status.value},
            }
        )

        self.event_bus.publish(PaymentDeleted.create(payment=payment, invoice=updated))

        return updated

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        """
        Payments on an invoice, newest payment date first.

        Raises:
            NotFoundError: Invoice not found
        """
        with self.postgres.transaction() as tx:
            row = tx.execute_single(
                "SELECT id, organization_id FROM invoices WHERE id = %s",
                (invoice_id,)
            )
            check_owned(row, "Invoice", invoice_id)
            return fetch_payments(tx, invoice_id)

    def get_by_id(self, payment_id: UUID) -> Payment | None:
        row = self.postgres.execute_single(
            "SELECT * FROM payments WHERE id = %s",
            (payment_id,)
        )
        return Payment.model_validate(row) if row else None

    def get_payment_stats(self) -> PaymentStats:
        """Count and sum of every payment in the active organization."""
        row = self.postgres.execute_single(
            """
            SELECT COUNT(*) AS total_payments, COALESCE(SUM(amount), 0) AS total_amount
            FROM payments
            """
        )
        return PaymentStats(
            total_payments=row["total_payments"],
            total_amount=row["total_amount"],
        )
