"""
Invoice service for billing.

Every mutation runs in one transaction that covers the invoice row, its
items, any payments it touches, the organization's invoice counter and the
client's stored balance. Audit entries and events go out only after that
transaction has committed.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.calculator import InvoiceTotals, calculate_totals
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import (
    InvoiceCreated, InvoiceUpdated, InvoiceSent, InvoicePaid, InvoiceCancelled,
)
from core.exceptions import (
    NotFoundError, OwnershipError, ReconciliationRequiredError, ValidationError,
)
from core.models import (
    Client, Invoice, InvoiceCreate, InvoiceItem, InvoiceItemInput, InvoiceUpdate,
    Organization,
)
from core.money import ZERO
from core.reconciliation import (
    EditApplied, NeedsPaymentRemoval, Rejected,
    confirm_removal, propose_edit, reconcile,
)
from core.services.client_service import ClientService
from core.services.invoice_queries import (
    check_owned, delete_payments, fetch_items, fetch_payments, lock_invoice,
)
from core.services.retry import retry_on_conflict
from core.status import InvoiceStatus, plan_transition
from utils.request_context import get_current_organization_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_SNAPSHOT_EXCLUDE = {"updated_at", "created_at"}
_STATUS_FIELDS = {"status", "sent_at", "amount_paid", "balance_due", "paid_at"}


def _snapshot(invoice: Invoice) -> dict:
    """JSON-safe invoice state for audit diffs, items included as a list."""
    data = invoice.model_dump(mode="json", exclude={"items"})
    data["items"] = [
        item.model_dump(mode="json", exclude={"id", "invoice_id"})
        for item in invoice.items
    ]
    return data


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        client_service: ClientService,
        config: BillingConfig | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.clients = client_service
        self.config = config or BillingConfig()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _allocate_invoice_number(self, tx: Transaction, organization_id: UUID) -> str:
        """
        Take the organization's next sequence number.

        Format: {prefix}-{year}-{sequence}, e.g. INV-2026-0042. The increment
        and the read are one statement, and the row stays locked until the
        invoice insert commits, so concurrent creates can neither share nor
        skip a number.
        """
        row = tx.execute_single(
            """
            UPDATE organizations
            SET invoice_next_number = invoice_next_number + 1, updated_at = %s
            WHERE id = %s
            RETURNING invoice_prefix, invoice_next_number - 1 AS sequence
            """,
            (now_utc(), organization_id)
        )
        if row is None:
            raise NotFoundError(f"Organization {organization_id} not found")

        prefix = row["invoice_prefix"] or self.config.default_invoice_prefix
        year = now_utc().year
        padding = self.config.invoice_number_padding
        return f"{prefix}-{year}-{row['sequence']:0{padding}d}"

    def _check_client(self, tx: Transaction, client_id: UUID) -> None:
        row = tx.execute_single(
            "SELECT id, organization_id FROM clients WHERE id = %s",
            (client_id,)
        )
        check_owned(row, "Client", client_id)

    def _replace_items(self, tx: Transaction, invoice_id: UUID, totals: InvoiceTotals) -> list[InvoiceItem]:
        tx.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,))

        items = []
        for line in totals.lines:
            row = tx.execute_single(
                """
                INSERT INTO invoice_items (
                    id, invoice_id, description, quantity, rate, amount, sort_order
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid4(), invoice_id, line.description, line.quantity,
                    line.rate, line.amount, line.sort_order
                )
            )
            items.append(InvoiceItem.model_validate(row))
        return items

    @staticmethod
    def _totals_for(data: InvoiceCreate) -> InvoiceTotals:
        if data.due_date < data.date:
            raise ValidationError("Due date cannot be before the invoice date")
        return calculate_totals([item.to_line() for item in data.items], data.tax_rate)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    @retry_on_conflict
    def create_invoice(self, data: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice with its line items.

        Args:
            data: Invoice creation data

        Returns:
            Created invoice in DRAFT status, items attached

        Raises:
            ValidationError: No items, bad quantity/rate/tax, due before date
            NotFoundError: Client not in the active organization
        """
        user_id = get_current_user_id()
        organization_id = get_current_organization_id()
        totals = self._totals_for(data)
        now = now_utc()

        with self.postgres.transaction() as tx:
            self._check_client(tx, data.client_id)
            invoice_number = self._allocate_invoice_number(tx, organization_id)
            invoice_id = uuid4()

            row = tx.execute_single(
                """
                INSERT INTO invoices (
                    id, organization_id, client_id, created_by,
                    invoice_number, status, date, due_date,
                    subtotal, tax_rate, tax_amount, total,
                    amount_paid, balance_due, notes, terms,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    invoice_id, organization_id, data.client_id, user_id,
                    invoice_number, InvoiceStatus.DRAFT.value, data.date, data.due_date,
                    totals.subtotal, totals.tax_rate, totals.tax_amount, totals.total,
                    ZERO, totals.total, data.notes, data.terms,
                    now, now
                )
            )
            items = self._replace_items(tx, invoice_id, totals)
            self.clients.recalculate_balance(tx, data.client_id)

        invoice = Invoice.model_validate({**row, "items": items})

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            entity_name=invoice.invoice_number,
            action=AuditAction.CREATE,
            changes={"created": _snapshot(invoice)}
        )
        self.event_bus.publish(InvoiceCreated.create(invoice=invoice))

        return invoice

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def get_by_id(self, invoice_id: UUID, include_items: bool = True) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice (with items unless include_items=False) if found in the
            active organization, None otherwise.
        """
        with self.postgres.transaction() as tx:
            row = tx.execute_single("SELECT * FROM invoices WHERE id = %s", (invoice_id,))
            if row is None:
                return None
            items = fetch_items(tx, invoice_id) if include_items else []

        return Invoice.model_validate({**row, "items": items})

    def list_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        """Line items of an invoice in display order."""
        with self.postgres.transaction() as tx:
            return fetch_items(tx, invoice_id)

    def list_invoices(
        self,
        search: str | None = None,
        status: InvoiceStatus | None = None,
        client_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Invoice]:
        """
        List invoices, newest first.

        Args:
            search: Case-insensitive match on invoice number or client name
            status: Only this status
            client_id: Only this client's invoices
        """
        conditions = ["TRUE"]
        params: list = []

        if status is not None:
            conditions.append("i.status = %s")
            params.append(InvoiceStatus(status).value)
        if client_id is not None:
            conditions.append("i.client_id = %s")
            params.append(client_id)
        if search:
            pattern = f"%{search}%"
            conditions.append("(i.invoice_number ILIKE %s OR c.name ILIKE %s)")
            params.extend([pattern, pattern])

        params.extend([limit, offset])

        rows = self.postgres.execute(
            f"""
            SELECT i.* FROM invoices i
            JOIN clients c ON c.id = i.client_id
            WHERE {' AND '.join(conditions)}
            ORDER BY i.created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params)
        )

        return [Invoice.model_validate(row) for row in rows]

    def get_item_suggestions(self, query: str = "") -> list[str]:
        """
        Distinct item descriptions used on this organization's invoices.

        Empty query returns any descriptions; otherwise partial match.
        """
        pattern = f"%{query}%" if query else "%"
        rows = self.postgres.execute(
            """
            SELECT DISTINCT it.description
            FROM invoice_items it
            JOIN invoices i ON i.id = it.invoice_id
            WHERE it.description ILIKE %s
            LIMIT %s
            """,
            (pattern, self.config.suggestion_limit)
        )
        return [row["description"] for row in rows]

    # -------------------------------------------------------------------------
    # Edit (two-phase when payments exist)
    # -------------------------------------------------------------------------

    def propose_edit(self, invoice_id: UUID, data: InvoiceUpdate) -> EditApplied | NeedsPaymentRemoval:
        """
        Dry run of an edit: does it need payments removed first?

        Nothing is written. Use the returned NeedsPaymentRemoval to show the
        user which payments exist and how much has to go.

        Raises:
            ValidationError: Invalid items, or invoice is cancelled
            NotFoundError: Invoice not found
        """
        totals = self._totals_for(data)

        with self.postgres.transaction() as tx:
            current = lock_invoice(tx, invoice_id)
            if current.is_cancelled:
                raise ValidationError(f"Invoice {current.invoice_number} is cancelled")
            payments = fetch_payments(tx, invoice_id)

        return propose_edit(totals.total, payments)

    @retry_on_conflict
    def update_invoice(
        self,
        invoice_id: UUID,
        data: InvoiceUpdate,
        payment_ids_to_remove: list[UUID] | None = None,
    ) -> Invoice:
        """
        Replace an invoice's fields and items, recomputing every total.

        If existing payments exceed the new total, the edit is refused with
        ReconciliationRequiredError unless `payment_ids_to_remove` names
        payments whose removal brings what's paid within the new total. Those
        payments are deleted in the same transaction as the edit.

        Args:
            invoice_id: Invoice UUID
            data: New field values and items
            payment_ids_to_remove: User-confirmed payments to void

        Returns:
            Updated invoice with items

        Raises:
            ReconciliationRequiredError: Payments exceed new total, no removal set given
            ValidationError: Bad input, insufficient removal set, cancelled invoice
            NotFoundError: Invoice or client not found
        """
        totals = self._totals_for(data)
        now = now_utc()

        with self.postgres.transaction() as tx:
            current = lock_invoice(tx, invoice_id)
            if current.is_cancelled:
                raise ValidationError(f"Invoice {current.invoice_number} is cancelled")
            current.items = fetch_items(tx, invoice_id)

            if data.client_id != current.client_id:
                self._check_client(tx, data.client_id)

            payments = fetch_payments(tx, invoice_id)

            if payment_ids_to_remove is None:
                outcome = propose_edit(totals.total, payments)
                if isinstance(outcome, NeedsPaymentRemoval):
                    raise ReconciliationRequiredError(
                        payments=list(outcome.payments),
                        excess_amount=outcome.excess_amount,
                        new_total=outcome.new_total,
                    )
            else:
                outcome = confirm_removal(totals.total, payments, payment_ids_to_remove)
                if isinstance(outcome, Rejected):
                    raise ValidationError(outcome.reason)

            removed = list(outcome.payments_to_remove)
            removed_ids = {p.id for p in removed}
            delete_payments(tx, invoice_id, list(removed_ids))
            remaining = [p for p in payments if p.id not in removed_ids]

            state = reconcile(
                totals.total,
                [p.amount for p in remaining],
                current.status,
                sent_at=current.sent_at,
                paid_at=current.paid_at,
                now=now,
            )

            row = tx.execute_single(
                """
                UPDATE invoices
                SET client_id = %s, date = %s, due_date = %s,
                    subtotal = %s, tax_rate = %s, tax_amount = %s, total = %s,
                    amount_paid = %s, balance_due = %s, status = %s, paid_at = %s,
                    notes = %s, terms = %s, updated_at = %s
                WHERE id = %s
                RETURNING *
                """,
                (
                    data.client_id, data.date, data.due_date,
                    totals.subtotal, totals.tax_rate, totals.tax_amount, totals.total,
                    state.amount_paid, state.balance_due, state.status.value, state.paid_at,
                    data.notes, data.terms, now,
                    invoice_id
                )
            )
            items = self._replace_items(tx, invoice_id, totals)

            self.clients.recalculate_balance(tx, data.client_id)
            if data.client_id != current.client_id:
                self.clients.recalculate_balance(tx, current.client_id)

        updated = Invoice.model_validate({**row, "items": items})

        changes = compute_changes(_snapshot(current), _snapshot(updated), _SNAPSHOT_EXCLUDE)
        if changes:
            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                entity_name=updated.invoice_number,
                action=AuditAction.UPDATE,
                changes=changes
            )
        for payment in removed:
            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                entity_name=updated.invoice_number,
                action=AuditAction.PAYMENT_DELETED,
                changes={
                    "payment": payment.model_dump(mode="json"),
                    "reason": "removed to reconcile invoice edit",
                }
            )

        self.event_bus.publish(InvoiceUpdated.create(invoice=updated, removed_payments=tuple(removed)))
        if updated.is_paid and current.status != InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return updated

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @retry_on_conflict
    def update_status(self, invoice_id: UUID, status: InvoiceStatus | str) -> Invoice:
        """
        Apply a user-requested status change.

        Setting the current status again is a successful no-op: nothing is
        written or audited. Cancelling deletes every payment on the invoice
        and resets amount_paid/balance_due in the same transaction.

        Args:
            invoice_id: Invoice UUID
            status: Target status (never PAID or PARTIAL)

        Returns:
            Invoice after the change

        Raises:
            ValidationError: Unknown or illegal target status
            NotFoundError: Invoice not found
        """
        try:
            target = InvoiceStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown invoice status '{status}'")

        now = now_utc()
        purged = []

        with self.postgres.transaction() as tx:
            current = lock_invoice(tx, invoice_id)
            change = plan_transition(current.status, target, current.sent_at, now)

            if change.no_op:
                current.items = fetch_items(tx, invoice_id)
                return current

            amount_paid = current.amount_paid
            balance_due = current.balance_due
            paid_at = current.paid_at

            if change.purge_payments:
                purged = fetch_payments(tx, invoice_id)
                tx.execute("DELETE FROM payments WHERE invoice_id = %s", (invoice_id,))
                amount_paid = ZERO
                balance_due = current.total
                paid_at = None

            row = tx.execute_single(
                """
                UPDATE invoices
                SET status = %s, sent_at = %s, amount_paid = %s, balance_due = %s,
                    paid_at = %s, updated_at = %s
                WHERE id = %s
                RETURNING *
                """,
                (
                    change.target.value, change.sent_at, amount_paid, balance_due,
                    paid_at, now, invoice_id
                )
            )
            items = fetch_items(tx, invoice_id)
            self.clients.recalculate_balance(tx, current.client_id)

        updated = Invoice.model_validate({**row, "items": items})

        changes = compute_changes(
            current.model_dump(mode="json", include=_STATUS_FIELDS),
            updated.model_dump(mode="json", include=_STATUS_FIELDS),
        )
        if purged:
            changes["purged_payments"] = [p.model_dump(mode="json") for p in purged]

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            entity_name=updated.invoice_number,
            action=AuditAction.STATUS_CHANGE,
            changes=changes
        )

        if updated.status == InvoiceStatus.CANCELLED:
            self.event_bus.publish(InvoiceCancelled.create(invoice=updated, purged_payments=tuple(purged)))

        return updated

    def send_invoice(self, invoice_id: UUID) -> Invoice:
        """
        Send (or re-send) an invoice to its client by email.

        A draft moves to SENT and gets its sent_at stamp; later sends keep
        the original stamp. Email delivery happens in InvoiceSent handlers
        after the status change has committed; a delivery failure is logged
        and does not undo the send.

        Raises:
            ValidationError: Client has no email, or invoice paid/cancelled
            NotFoundError: Invoice not found
        """
        invoice = self.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            raise ValidationError(
                f"Invoice {invoice.invoice_number} is {invoice.status.value} and cannot be sent"
            )

        client = self.clients.get_by_id(invoice.client_id)
        if client is None:
            raise NotFoundError(f"Client {invoice.client_id} not found")
        if not client.email:
            raise ValidationError("Client has no email address")

        if invoice.status == InvoiceStatus.DRAFT:
            invoice = self.update_status(invoice_id, InvoiceStatus.SENT)

        organization = self._get_organization()
        failures = self.event_bus.publish(
            InvoiceSent.create(invoice=invoice, client=client, organization=organization)
        )
        if failures:
            logger.warning(
                f"Invoice {invoice.invoice_number} marked sent but {failures} "
                "delivery handler(s) failed"
            )

        return invoice

    def _get_organization(self) -> Organization | None:
        row = self.postgres.execute_single(
            "SELECT * FROM organizations WHERE id = %s",
            (get_current_organization_id(),)
        )
        return Organization.model_validate(row) if row else None

    # -------------------------------------------------------------------------
    # Delete / duplicate / overdue sweep
    # -------------------------------------------------------------------------

    @retry_on_conflict
    def delete_invoice(self, invoice_id: UUID) -> bool:
        """
        Delete an invoice together with its items and payments.

        Returns:
            True if deleted, False if not found
        """
        with self.postgres.transaction() as tx:
            try:
                current = lock_invoice(tx, invoice_id)
            except NotFoundError:
                return False
            current.items = fetch_items(tx, invoice_id)
            payments = fetch_payments(tx, invoice_id)

            # Items and payments go with it via ON DELETE CASCADE
            tx.execute("DELETE FROM invoices WHERE id = %s", (invoice_id,))
            self.clients.recalculate_balance(tx, current.client_id)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            entity_name=current.invoice_number,
            action=AuditAction.DELETE,
            changes={
                "deleted": _snapshot(current),
                "payments": [p.model_dump(mode="json") for p in payments],
            }
        )

        return True

    def duplicate_invoice(self, invoice_id: UUID) -> Invoice:
        """
        Copy an invoice into a new draft with a fresh number.

        The copy is dated now and due after `duplicate_due_days`. Payments
        and send/paid history are not copied.
        """
        original = self.get_by_id(invoice_id)
        if original is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        now = now_utc()
        return self.create_invoice(InvoiceCreate(
            client_id=original.client_id,
            date=now,
            due_date=now + timedelta(days=self.config.duplicate_due_days),
            tax_rate=original.tax_rate,
            notes=original.notes,
            terms=original.terms,
            items=[
                InvoiceItemInput(description=item.description, quantity=item.quantity, rate=item.rate)
                for item in original.items
            ],
        ))

    def mark_overdue(self, as_of: datetime | None = None) -> list[Invoice]:
        """
        Move sent invoices past their due date to OVERDUE.

        Partially paid invoices keep PARTIAL; that status is payment-driven.

        Args:
            as_of: Cutoff (defaults to now)

        Returns:
            Invoices that changed
        """
        as_of = as_of or now_utc()
        rows = self.postgres.execute(
            """
            SELECT id FROM invoices
            WHERE status = 'sent' AND due_date < %s
            ORDER BY due_date ASC
            """,
            (as_of,)
        )

        changed = []
        for row in rows:
            # Re-checked under lock; a payment may have landed since the scan
            try:
                changed.append(self.update_status(row["id"], InvoiceStatus.OVERDUE))
            except (ValidationError, NotFoundError, OwnershipError) as e:
                logger.info(f"Skipping overdue for invoice {row['id']}: {e}")
        return changed
