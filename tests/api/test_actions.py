"""Tests for POST /api/actions unified mutation endpoint."""

import pytest
from decimal import Decimal
from uuid import uuid4

from core.exceptions import (
    ConflictError, NotFoundError, OwnershipError, PersistenceError,
    ReconciliationRequiredError, ValidationError,
)
from core.models import InvoiceCreate, InvoiceUpdate, PaymentCreate
from core.reconciliation import EditApplied, NeedsPaymentRemoval
from core.status import InvoiceStatus
from factories import make_client, make_invoice, make_payment


def _invoice_payload(client_id=None):
    return {
        "client_id": str(client_id or uuid4()),
        "date": "2026-10-01T00:00:00Z",
        "due_date": "2026-10-31T00:00:00Z",
        "tax_rate": "10",
        "items": [{"description": "Consulting", "quantity": 2, "rate": "100.00"}],
    }


def _post(client, domain, action, data):
    return client.post("/api/actions", json={"domain": domain, "action": action, "data": data})


# =============================================================================
# AUTHENTICATION & VALIDATION
# =============================================================================


class TestActionsAuthentication:

    def test_unauthenticated_returns_401(self, unauthed_client):
        response = _post(unauthed_client, "invoice", "create", _invoice_payload())

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"


class TestActionsValidation:

    def test_missing_domain_returns_422(self, client):
        response = client.post("/api/actions", json={"action": "create", "data": {}})
        assert response.status_code == 422

    def test_unknown_domain_returns_400(self, client):
        response = _post(client, "ticket", "create", {})

        assert response.status_code == 400
        assert "Unknown domain" in response.json()["error"]["message"]

    def test_disallowed_action_returns_400(self, client):
        response = _post(client, "payment", "update", {})

        assert response.status_code == 400
        assert "not allowed" in response.json()["error"]["message"]

    def test_invalid_payload_returns_422(self, client, services):
        payload = _invoice_payload()
        payload["items"] = []

        response = _post(client, "invoice", "create", payload)

        assert response.status_code == 422
        services["invoice"].create_invoice.assert_not_called()

    def test_missing_id_returns_400(self, client):
        response = _post(client, "invoice", "send", {})

        assert response.status_code == 400
        assert "'id' is required" in response.json()["error"]["message"]


# =============================================================================
# INVOICE DOMAIN
# =============================================================================


class TestInvoiceActions:

    def test_create(self, client, services):
        invoice = make_invoice()
        services["invoice"].create_invoice.return_value = invoice

        response = _post(client, "invoice", "create", _invoice_payload(invoice.client_id))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["invoice_number"] == "INV-2026-0001"
        assert body["data"]["total"] == "220.00"

        data = services["invoice"].create_invoice.call_args.args[0]
        assert isinstance(data, InvoiceCreate)
        assert data.items[0].rate == Decimal("100.00")

    def test_update_passes_removal_set(self, client, services):
        invoice = make_invoice()
        payment_id = uuid4()
        services["invoice"].update_invoice.return_value = invoice

        payload = _invoice_payload(invoice.client_id)
        payload.update({"id": str(invoice.id), "payment_ids_to_remove": [str(payment_id)]})
        response = _post(client, "invoice", "update", payload)

        assert response.status_code == 200
        invoice_id, data, remove = services["invoice"].update_invoice.call_args.args
        assert invoice_id == invoice.id
        assert isinstance(data, InvoiceUpdate)
        assert remove == [payment_id]

    def test_update_without_removal_set_passes_none(self, client, services):
        invoice = make_invoice()
        services["invoice"].update_invoice.return_value = invoice

        payload = _invoice_payload(invoice.client_id)
        payload["id"] = str(invoice.id)
        _post(client, "invoice", "update", payload)

        assert services["invoice"].update_invoice.call_args.args[2] is None

    def test_update_needing_reconciliation_returns_409_with_payments(self, client, services):
        payment = make_payment("100.00")
        services["invoice"].update_invoice.side_effect = ReconciliationRequiredError(
            payments=[payment], excess_amount=Decimal("45.00"), new_total=Decimal("55.00"),
        )

        payload = _invoice_payload()
        payload["id"] = str(uuid4())
        response = _post(client, "invoice", "update", payload)

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "RECONCILIATION_REQUIRED"
        assert error["details"]["excess_amount"] == "45.00"
        assert error["details"]["new_total"] == "55.00"
        assert error["details"]["payments"][0]["id"] == str(payment.id)

    def test_propose_edit_reports_needed_removal(self, client, services):
        payment = make_payment("100.00")
        services["invoice"].propose_edit.return_value = NeedsPaymentRemoval(
            new_total=Decimal("55.00"),
            amount_paid=Decimal("100.00"),
            excess_amount=Decimal("45.00"),
            payments=(payment,),
        )

        payload = _invoice_payload()
        payload["id"] = str(uuid4())
        data = _post(client, "invoice", "propose_edit", payload).json()["data"]

        assert data["needs_payment_removal"] is True
        assert data["excess_amount"] == "45.00"
        assert len(data["payments"]) == 1

    def test_propose_edit_applied(self, client, services):
        services["invoice"].propose_edit.return_value = EditApplied(new_total=Decimal("300.00"))

        payload = _invoice_payload()
        payload["id"] = str(uuid4())
        data = _post(client, "invoice", "propose_edit", payload).json()["data"]

        assert data == {"needs_payment_removal": False, "new_total": "300.00"}

    def test_update_status(self, client, services):
        invoice = make_invoice(status=InvoiceStatus.CANCELLED)
        services["invoice"].update_status.return_value = invoice

        response = _post(client, "invoice", "update_status", {"id": str(invoice.id), "status": "cancelled"})

        assert response.status_code == 200
        services["invoice"].update_status.assert_called_once_with(invoice.id, "cancelled")

    def test_direct_paid_status_returns_400(self, client, services):
        services["invoice"].update_status.side_effect = ValidationError(
            "Status 'paid' is set by recording payments, not directly"
        )

        response = _post(client, "invoice", "update_status", {"id": str(uuid4()), "status": "paid"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_send(self, client, services):
        invoice = make_invoice(status=InvoiceStatus.SENT)
        services["invoice"].send_invoice.return_value = invoice

        response = _post(client, "invoice", "send", {"id": str(invoice.id)})

        assert response.json()["data"]["status"] == "sent"

    def test_delete_missing_returns_400(self, client, services):
        services["invoice"].delete_invoice.return_value = False

        response = _post(client, "invoice", "delete", {"id": str(uuid4())})

        assert response.status_code == 400
        assert "not found" in response.json()["error"]["message"]

    def test_duplicate(self, client, services):
        copy = make_invoice(invoice_number="INV-2026-0002")
        services["invoice"].duplicate_invoice.return_value = copy

        response = _post(client, "invoice", "duplicate", {"id": str(uuid4())})

        assert response.json()["data"]["invoice_number"] == "INV-2026-0002"


# =============================================================================
# PAYMENT DOMAIN
# =============================================================================


class TestPaymentActions:

    def test_record(self, client, services):
        invoice = make_invoice(status=InvoiceStatus.PARTIAL, amount_paid=Decimal("100.00"), balance_due=Decimal("120.00"))
        payment = make_payment("100.00", invoice_id=invoice.id)
        services["payment"].record_payment.return_value = (payment, invoice)

        response = _post(client, "payment", "record", {
            "invoice_id": str(invoice.id),
            "amount": "100.00",
            "payment_date": "2026-10-05T00:00:00Z",
            "payment_method": "cash",
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["payment"]["amount"] == "100.00"
        assert data["invoice"]["status"] == "partial"
        assert data["invoice"]["balance_due"] == "120.00"

        invoice_id, payment_data = services["payment"].record_payment.call_args.args
        assert invoice_id == invoice.id
        assert isinstance(payment_data, PaymentCreate)

    def test_overpayment_returns_400(self, client, services):
        services["payment"].record_payment.side_effect = ValidationError(
            "Payment amount 300.00 cannot exceed balance due 220.00"
        )

        response = _post(client, "payment", "record", {
            "invoice_id": str(uuid4()),
            "amount": "300.00",
            "payment_date": "2026-10-05T00:00:00Z",
            "payment_method": "cash",
        })

        assert response.status_code == 400

    def test_delete(self, client, services):
        services["payment"].delete_payment.return_value = make_invoice(status=InvoiceStatus.SENT)

        data = _post(client, "payment", "delete", {"id": str(uuid4())}).json()["data"]

        assert data["deleted"] is True
        assert data["invoice"]["status"] == "sent"


# =============================================================================
# CLIENT DOMAIN
# =============================================================================


class TestClientActions:

    def test_create(self, client, services):
        services["client"].create.return_value = make_client(name="Wayne Enterprises")

        response = _post(client, "client", "create", {"name": "Wayne Enterprises"})

        assert response.json()["data"]["name"] == "Wayne Enterprises"

    def test_delete_with_invoices_returns_400(self, client, services):
        services["client"].delete.side_effect = ValidationError("Cannot delete client with existing invoices")

        response = _post(client, "client", "delete", {"id": str(uuid4())})

        assert response.status_code == 400
        assert "existing invoices" in response.json()["error"]["message"]


# =============================================================================
# ERROR MAPPING
# =============================================================================


class TestErrorMapping:

    @pytest.mark.parametrize("error,status,code", [
        (NotFoundError("Invoice x not found"), 404, "NOT_FOUND"),
        (OwnershipError("Invoice x not found"), 404, "NOT_FOUND"),
        (ConflictError("lock timeout"), 409, "CONFLICT"),
        (PersistenceError("connection lost"), 503, "SERVICE_UNAVAILABLE"),
        (RuntimeError("bug"), 500, "INTERNAL_ERROR"),
    ])
    def test_service_errors(self, client, services, error, status, code):
        services["invoice"].send_invoice.side_effect = error

        response = _post(client, "invoice", "send", {"id": str(uuid4())})

        assert response.status_code == status
        assert response.json()["error"]["code"] == code
