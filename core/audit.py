"""
Activity trail for billing entity changes.

Every mutation to an invoice, payment or client is logged here. The audit
log is:
- Append-only (entries never modified or deleted)
- Organization-scoped and user-attributed (who changed what, for which tenant)
- Detailed (captures before/after values)

Entries are written after the financial transaction has committed. A failed
audit write is logged and swallowed: it must never undo a payment.
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

import psycopg2.extras

from clients.postgres_client import PostgresClient
from core.exceptions import BillingError
from utils.request_context import get_current_organization_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_DELETED = "payment_deleted"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


class AuditLogger:
    """
    Activity trail for billing entity changes.

    Use model_dump(mode="json") when passing Pydantic models so UUIDs and
    datetimes are already strings. Bare Decimals are rendered as 2-place
    strings.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            entity_name=invoice.invoice_number,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")}
        )

        history = audit.get_entity_history("invoice", invoice.id)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        entity_name: str | None = None,
        user_id: UUID | None = None
    ) -> bool:
        """
        Log an entity change.

        Args:
            entity_type: Type of entity ("invoice", "payment", "client")
            entity_id: ID of the entity
            action: The action performed
            changes: The changes made (format depends on action)
            entity_name: Human-readable label (e.g. invoice number)
            user_id: User who made change (defaults to current context)

        Returns:
            True if written, False if the write failed (already logged).

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE / STATUS_CHANGE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        - PAYMENT_*: {"payment": {...}, "invoice": {"old": ..., "new": ...}}
        """
        try:
            if user_id is None:
                user_id = get_current_user_id()
            organization_id = get_current_organization_id()

            self.postgres.execute(
                """
                INSERT INTO audit_log (
                    id, organization_id, user_id, entity_type, entity_id,
                    entity_name, action, changes, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    uuid4(),
                    organization_id,
                    user_id,
                    entity_type,
                    entity_id,
                    entity_name,
                    action.value,
                    psycopg2.extras.Json(_json_safe(changes)),
                    now_utc()
                )
            )
        except (BillingError, RuntimeError):
            logger.exception(
                "Failed to write audit entry %s %s %s",
                action.value, entity_type, entity_id,
            )
            return False

        return True

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        return self.postgres.execute(
            """
            SELECT id, organization_id, user_id, entity_type, entity_id,
                   entity_name, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )

    def get_organization_activity(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        """
        Recent activity for the active organization, newest first.
        """
        return self.postgres.execute(
            """
            SELECT id, organization_id, user_id, entity_type, entity_id,
                   entity_name, action, changes, created_at
            FROM audit_log
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            (limit, offset)
        )
