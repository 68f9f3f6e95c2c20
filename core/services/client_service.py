"""
Client service for CRUD operations and balance roll-ups.

Handles client lifecycle: create, read, update, delete (only while the
client has no invoices). All operations are scoped to the active
organization via RLS.
"""

import logging
from types import SimpleNamespace
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.balance import ClientBalance, aggregate_client_balance
from core.exceptions import NotFoundError, ValidationError
from core.models import Client, ClientCreate, ClientUpdate
from core.services.invoice_queries import check_owned
from utils.request_context import get_current_organization_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Valid columns that can be updated
_UPDATABLE_COLUMNS = {
    "name", "email", "phone", "address", "city", "country", "tax_id", "notes"
}


class ClientService:
    """Service for client operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: ClientCreate) -> Client:
        """
        Create a new client in the active organization.

        Args:
            data: Client creation data

        Returns:
            Created client
        """
        organization_id = get_current_organization_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO clients (
                id, organization_id, name, email, phone, address,
                city, country, tax_id, notes, balance, created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, 0, %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), organization_id, data.name, data.email, data.phone, data.address,
                data.city, data.country, data.tax_id, data.notes, now, now
            )
        )[0]

        client = Client.model_validate(row)

        self.audit.log_change(
            entity_type="client",
            entity_id=client.id,
            entity_name=client.name,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return client

    def get_by_id(self, client_id: UUID) -> Client | None:
        """
        Get client by ID.

        Returns:
            Client if found, None otherwise.
            RLS automatically filters to the active organization.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM clients WHERE id = %s",
            (client_id,)
        )

        if row is None:
            return None

        return Client.model_validate(row)

    def update(self, client_id: UUID, data: ClientUpdate) -> Client:
        """
        Update client fields.

        Args:
            client_id: Client UUID
            data: Fields to update (only non-None fields are changed)

        Returns:
            Updated client

        Raises:
            NotFoundError: If client not found
        """
        current = self.get_by_id(client_id)
        if current is None:
            raise NotFoundError(f"Client {client_id} not found")

        updates = data.model_dump(exclude_none=True)
        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(client_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE clients
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = Client.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="client",
                entity_id=client_id,
                entity_name=updated.name,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, client_id: UUID) -> bool:
        """
        Delete a client.

        Invoices reference clients with ON DELETE RESTRICT; this checks first
        so the caller gets a readable error instead of a constraint failure.

        Returns:
            True if deleted, False if not found

        Raises:
            ValidationError: If the client still has invoices
        """
        with self.postgres.transaction() as tx:
            row = tx.execute_single(
                "SELECT * FROM clients WHERE id = %s FOR UPDATE",
                (client_id,)
            )
            if row is None:
                return False

            has_invoices = tx.execute_scalar(
                "SELECT EXISTS (SELECT 1 FROM invoices WHERE client_id = %s)",
                (client_id,)
            )
            if has_invoices:
                raise ValidationError("Cannot delete client with existing invoices")

            tx.execute("DELETE FROM clients WHERE id = %s", (client_id,))

        current = Client.model_validate(row)
        self.audit.log_change(
            entity_type="client",
            entity_id=client_id,
            entity_name=current.name,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def list_all(self, limit: int = 50, offset: int = 0) -> list[Client]:
        """
        List clients with pagination, newest first.
        """
        rows = self.postgres.execute(
            """
            SELECT * FROM clients
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            (limit, offset)
        )

        return [Client.model_validate(row) for row in rows]

    def search(self, query: str, limit: int = 20) -> list[Client]:
        """
        Search clients by name, email, or phone (case-insensitive, partial).
        """
        pattern = f"%{query}%"

        rows = self.postgres.execute(
            """
            SELECT * FROM clients
            WHERE name ILIKE %s
               OR email ILIKE %s
               OR phone ILIKE %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (pattern, pattern, pattern, limit)
        )

        return [Client.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Balance
    # -------------------------------------------------------------------------

    def get_client_balance(self, client_id: UUID) -> ClientBalance:
        """
        Compute a client's invoiced/paid/outstanding figures from scratch.

        Raises:
            NotFoundError: If client not found
        """
        with self.postgres.transaction() as tx:
            row = tx.execute_single(
                "SELECT id, organization_id FROM clients WHERE id = %s",
                (client_id,)
            )
            check_owned(row, "Client", client_id)
            return self._aggregate(tx, client_id)

    def recalculate_balance(self, tx: Transaction, client_id: UUID) -> ClientBalance:
        """
        Recompute and store a client's outstanding balance.

        Runs inside the caller's transaction so the stored balance commits
        (or rolls back) together with the invoice change that caused it.
        """
        balance = self._aggregate(tx, client_id)
        tx.execute(
            "UPDATE clients SET balance = %s, updated_at = %s WHERE id = %s",
            (balance.outstanding, now_utc(), client_id)
        )
        return balance

    def _aggregate(self, tx: Transaction, client_id: UUID) -> ClientBalance:
        rows = tx.execute(
            "SELECT status, total, amount_paid FROM invoices WHERE client_id = %s",
            (client_id,)
        )
        return aggregate_client_balance(client_id, [SimpleNamespace(**row) for row in rows])
