"""Shared setup for the DB-backed service tests."""

import pytest

from core.models import ClientCreate
from core.status import InvoiceStatus
from factories import invoice_input


@pytest.fixture
def billing_client(client_service, as_test_user):
    """A client with an email address in the primary organization."""
    return client_service.create(ClientCreate(name="Wayne Enterprises", email="ap@wayne.test"))


@pytest.fixture
def invoice(invoice_service, billing_client):
    """A draft invoice totalling 220.00."""
    return invoice_service.create_invoice(invoice_input(billing_client.id))


@pytest.fixture
def sent_invoice(invoice_service, invoice):
    return invoice_service.update_status(invoice.id, InvoiceStatus.SENT)
