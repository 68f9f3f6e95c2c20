"""Billing configuration."""

from pydantic import BaseModel, Field


class BillingConfig(BaseModel):
    """
    Invoicing defaults.

    Organization records carry their own prefix and counter; these values
    only apply when an organization hasn't customized them.
    """

    default_invoice_prefix: str = Field(
        default="INV",
        description="Prefix used when the organization has none",
        min_length=1,
        max_length=10,
    )
    invoice_number_padding: int = Field(
        default=4,
        description="Zero-padding width of the sequence part",
        ge=1,
        le=10,
    )
    duplicate_due_days: int = Field(
        default=30,
        description="Due date offset for duplicated invoices",
        ge=0,
    )
    suggestion_limit: int = Field(
        default=10,
        description="Max item descriptions returned as suggestions",
        ge=1,
        le=100,
    )

    # Email
    app_name: str = Field(
        default="Invoicy",
        description="Sender name when the organization has none",
    )
    sender_domain: str = Field(
        default="farahty.com",
        description="Domain for per-organization sender addresses",
    )
