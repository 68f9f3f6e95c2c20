"""GET /api/data - unified read endpoint."""

from dataclasses import asdict
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import NotFoundError
from core.status import InvoiceStatus


VALID_TYPES = {"invoices", "clients", "payments", "client_balance", "payment_stats"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]
    client_svc = services["client"]

    # -------------------------------------------------------------------------
    # Convenience routes (must be registered before the generic /data route)
    # -------------------------------------------------------------------------

    @router.get("/data/invoices/suggestions")
    async def item_suggestions(request: Request, q: str = Query("")):
        return success_response(invoice_svc.get_item_suggestions(q)).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Generic data endpoint
    # -------------------------------------------------------------------------

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        search: str | None = Query(None),
        status: str | None = Query(None),
        client_id: str | None = Query(None),
        invoice_id: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "invoices":
            return _handle_invoices(invoice_svc, id, search, status, client_id, limit, offset)

        if type == "clients":
            return _handle_clients(client_svc, id, search, limit, offset)

        if type == "payments":
            if not invoice_id:
                raise ValueError("'payments' type requires 'invoice_id' parameter")
            payments = payment_svc.list_payments(UUID(invoice_id))
            return success_response(
                [p.model_dump(mode="json") for p in payments]
            ).model_dump(mode="json")

        if type == "payment_stats":
            return success_response(payment_svc.get_payment_stats().model_dump(mode="json")).model_dump(mode="json")

        if type == "client_balance":
            if not client_id:
                raise ValueError("'client_balance' type requires 'client_id' parameter")
            balance = client_svc.get_client_balance(UUID(client_id))
            return success_response(_balance_to_json(balance)).model_dump(mode="json")

    return router


def _balance_to_json(balance) -> dict:
    data = asdict(balance)
    for key, value in data.items():
        if isinstance(value, Decimal):
            data[key] = f"{value:.2f}"
        elif isinstance(value, UUID):
            data[key] = str(value)
    return data


def _handle_invoices(invoice_svc, id, search, status, client_id, limit, offset):
    if id:
        invoice = invoice_svc.get_by_id(UUID(id))
        if invoice is None:
            raise NotFoundError(f"Invoice {id} not found")
        return success_response(invoice.model_dump(mode="json")).model_dump(mode="json")

    invoices = invoice_svc.list_invoices(
        search=search,
        status=InvoiceStatus(status) if status else None,
        client_id=UUID(client_id) if client_id else None,
        limit=limit,
        offset=offset,
    )
    return success_response(
        [i.model_dump(mode="json") for i in invoices]
    ).model_dump(mode="json")


def _handle_clients(client_svc, id, search, limit, offset):
    if id:
        client = client_svc.get_by_id(UUID(id))
        if client is None:
            raise NotFoundError(f"Client {id} not found")
        return success_response(client.model_dump(mode="json")).model_dump(mode="json")

    if search:
        clients = client_svc.search(search, limit)
        return success_response(
            [c.model_dump(mode="json") for c in clients]
        ).model_dump(mode="json")

    clients = client_svc.list_all(limit, offset)
    return success_response(
        [c.model_dump(mode="json") for c in clients]
    ).model_dump(mode="json")
