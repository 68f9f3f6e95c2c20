"""Model and input builders shared across the test suite."""

from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from core.models import (
    Client, Invoice, InvoiceCreate, InvoiceItem, Organization, Payment, PaymentCreate, PaymentMethod,
)
from core.status import InvoiceStatus
from utils.timezone import now_utc

# Must match conftest.py
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_ORG_ID = UUID("00000000-0000-0000-0000-0000000000a1")
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_ORG_B_ID = UUID("00000000-0000-0000-0000-0000000000b2")


def make_client(**overrides) -> Client:
    now = now_utc()
    data = dict(
        id=uuid4(), organization_id=TEST_ORG_ID,
        name="Wayne Enterprises", email="billing@wayne.test",
        phone=None, address=None, city=None, country=None,
        tax_id=None, notes=None, balance=Decimal("0.00"),
        created_at=now, updated_at=now,
    )
    data.update(overrides)
    return Client(**data)


def make_invoice(**overrides) -> Invoice:
    now = now_utc()
    invoice_id = overrides.pop("id", uuid4())
    data = dict(
        id=invoice_id, organization_id=TEST_ORG_ID, client_id=uuid4(),
        created_by=TEST_USER_ID, invoice_number="INV-2026-0001",
        status=InvoiceStatus.DRAFT, date=now, due_date=now,
        subtotal=Decimal("200.00"), tax_rate=Decimal("10"),
        tax_amount=Decimal("20.00"), total=Decimal("220.00"),
        amount_paid=Decimal("0.00"), balance_due=Decimal("220.00"),
        notes=None, terms=None, sent_at=None, paid_at=None,
        created_at=now, updated_at=now,
        items=[InvoiceItem(
            id=uuid4(), invoice_id=invoice_id, description="Consulting",
            quantity=2, rate=Decimal("100.00"), amount=Decimal("200.00"), sort_order=0,
        )],
    )
    data.update(overrides)
    return Invoice(**data)


def make_payment(amount: str, **overrides) -> Payment:
    now = now_utc()
    data = dict(
        id=uuid4(), invoice_id=uuid4(), organization_id=TEST_ORG_ID,
        amount=Decimal(amount), payment_date=now,
        payment_method=PaymentMethod.BANK_TRANSFER,
        reference=None, notes=None, created_by=TEST_USER_ID, created_at=now,
    )
    data.update(overrides)
    return Payment(**data)


def make_organization(**overrides) -> Organization:
    now = now_utc()
    data = dict(
        id=TEST_ORG_ID, name="Acme Studio", slug="acme",
        invoice_prefix="INV", invoice_next_number=1, company_email=None,
        created_at=now, updated_at=now,
    )
    data.update(overrides)
    return Organization(**data)


def invoice_input(client_id, **overrides) -> InvoiceCreate:
    """2 x 100.00 at 10% tax: subtotal 200.00, tax 20.00, total 220.00."""
    now = now_utc()
    data = {
        "client_id": client_id,
        "date": now,
        "due_date": now + timedelta(days=14),
        "tax_rate": "10",
        "items": [{"description": "Consulting", "quantity": 2, "rate": "100.00"}],
    }
    data.update(overrides)
    return InvoiceCreate(**data)


def payment_input(amount: str, **overrides) -> PaymentCreate:
    data = {"amount": amount, "payment_date": now_utc(), "payment_method": "bank_transfer"}
    data.update(overrides)
    return PaymentCreate(**data)
