"""Core domain models."""

from core.models.organization import Organization
from core.models.client import Client, ClientCreate, ClientUpdate
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceItem, InvoiceItemInput,
)
from core.models.payment import Payment, PaymentCreate, PaymentMethod, PaymentStats
from core.status import InvoiceStatus

__all__ = [
    # Organization
    "Organization",
    # Client
    "Client", "ClientCreate", "ClientUpdate",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceItem", "InvoiceItemInput",
    "InvoiceStatus",
    # Payment
    "Payment", "PaymentCreate", "PaymentMethod", "PaymentStats",
]
