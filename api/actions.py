"""POST /api/actions - unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import (
    ClientCreate, ClientUpdate,
    InvoiceCreate, InvoiceUpdate,
    PaymentCreate,
)
from core.reconciliation import NeedsPaymentRemoval


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["payment"]),
        "client": ClientHandler(services["client"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}", None)
        result = method(body.data)
        return success_response(result).model_dump(mode="json")

    return router


def _require_id(data: dict, key: str = "id") -> UUID:
    value = data.pop(key, None)
    if value is None:
        raise ValueError(f"'{key}' is required")
    return UUID(str(value))


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "update", "propose_edit", "update_status", "send", "delete", "duplicate"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        invoice = self.service.create_invoice(InvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_update(self, data: dict):
        invoice_id = _require_id(data)
        remove = data.pop("payment_ids_to_remove", None)
        payment_ids = [UUID(str(p)) for p in remove] if remove is not None else None
        invoice = self.service.update_invoice(invoice_id, InvoiceUpdate(**data), payment_ids)
        return invoice.model_dump(mode="json")

    def _handle_propose_edit(self, data: dict):
        invoice_id = _require_id(data)
        outcome = self.service.propose_edit(invoice_id, InvoiceUpdate(**data))
        if isinstance(outcome, NeedsPaymentRemoval):
            return {
                "needs_payment_removal": True,
                "new_total": f"{outcome.new_total:.2f}",
                "amount_paid": f"{outcome.amount_paid:.2f}",
                "excess_amount": f"{outcome.excess_amount:.2f}",
                "payments": [p.model_dump(mode="json") for p in outcome.payments],
            }
        return {
            "needs_payment_removal": False,
            "new_total": f"{outcome.new_total:.2f}",
        }

    def _handle_update_status(self, data: dict):
        invoice_id = _require_id(data)
        if "status" not in data:
            raise ValueError("'status' is required")
        invoice = self.service.update_status(invoice_id, data["status"])
        return invoice.model_dump(mode="json")

    def _handle_send(self, data: dict):
        invoice = self.service.send_invoice(_require_id(data))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        invoice_id = _require_id(data)
        deleted = self.service.delete_invoice(invoice_id)
        if not deleted:
            raise ValueError(f"Invoice {invoice_id} not found")
        return {"deleted": True}

    def _handle_duplicate(self, data: dict):
        invoice = self.service.duplicate_invoice(_require_id(data))
        return invoice.model_dump(mode="json")


class PaymentHandler:
    ALLOWED_ACTIONS = {"record", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_record(self, data: dict):
        invoice_id = _require_id(data, "invoice_id")
        payment, invoice = self.service.record_payment(invoice_id, PaymentCreate(**data))
        return {
            "payment": payment.model_dump(mode="json"),
            "invoice": invoice.model_dump(mode="json"),
        }

    def _handle_delete(self, data: dict):
        invoice = self.service.delete_payment(_require_id(data))
        return {"deleted": True, "invoice": invoice.model_dump(mode="json")}


class ClientHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        client = self.service.create(ClientCreate(**data))
        return client.model_dump(mode="json")

    def _handle_update(self, data: dict):
        client_id = _require_id(data)
        client = self.service.update(client_id, ClientUpdate(**data))
        return client.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        client_id = _require_id(data)
        deleted = self.service.delete(client_id)
        if not deleted:
            raise ValueError(f"Client {client_id} not found")
        return {"deleted": True}
