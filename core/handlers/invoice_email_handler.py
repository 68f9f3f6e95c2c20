"""
Handler for InvoiceSent events.

Emails the invoice summary to the client. Delivery is best-effort: a
gateway failure raises out of the handler, the event bus logs it, and the
invoice stays sent.
"""

import logging
from html import escape
from typing import Callable

from clients.email_client import EmailGatewayClient
from core.config import BillingConfig
from core.events import InvoiceSent
from core.money import format_money

logger = logging.getLogger(__name__)


def email_sender(organization, config: BillingConfig) -> tuple[str, str]:
    """
    From/Reply-To for an organization.

    Name is the organization name (else the app name); address is
    <slug>@<sender_domain> (else <app name>@<sender_domain>).
    """
    name = getattr(organization, "name", None) or config.app_name
    slug = getattr(organization, "slug", None)
    local_part = slug if slug else config.app_name.lower()
    sender = f"{name} <{local_part}@{config.sender_domain}>"
    return sender, sender


def render_invoice_email(invoice, client, sender_name: str) -> tuple[str, str]:
    """Subject and HTML body for an invoice email."""
    subject = f"Invoice {invoice.invoice_number} from {sender_name}"

    notes = f'<p style="font-style: italic;">{escape(invoice.notes)}</p>' if invoice.notes else ""
    html = (
        f"<h1>Invoice {escape(invoice.invoice_number)}</h1>"
        f"<p>Dear {escape(client.name)},</p>"
        f"<p>Please find your invoice for the amount of "
        f"<strong>{format_money(invoice.total)}</strong>.</p>"
        "<table>"
        f"<tr><td>Invoice Number:</td><td>{escape(invoice.invoice_number)}</td></tr>"
        f"<tr><td>Due Date:</td><td>{invoice.due_date.date().isoformat()}</td></tr>"
        f"<tr><td>Amount Due:</td><td>{format_money(invoice.balance_due)}</td></tr>"
        "</table>"
        f"{notes}"
        "<p>Thank you for your business!</p>"
    )
    return subject, html


def handle_invoice_sent(email_client: EmailGatewayClient, config: BillingConfig | None = None) -> Callable:
    """
    Factory that returns an InvoiceSent handler.

    Args:
        email_client: Gateway client used for delivery
        config: Billing config for sender defaults

    Returns:
        Handler callable that emails the client
    """
    config = config or BillingConfig()

    def handler(event: InvoiceSent):
        invoice = event.invoice
        client = event.client

        if client is None or not client.email:
            logger.warning(f"Invoice {invoice.invoice_number} sent without a client email")
            return

        from_address, reply_to = email_sender(event.organization, config)
        sender_name = from_address.split(" <", 1)[0]
        subject, html = render_invoice_email(invoice, client, sender_name)

        email_client.send_email(
            to=client.email,
            subject=subject,
            html=html,
            from_address=from_address,
            reply_to=reply_to,
        )

    return handler
