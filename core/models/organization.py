"""Organization (tenant) model.

Organizations are managed by the identity provider; this service only reads
the billing settings and owns the invoice counter.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Organization(BaseModel):
    """Billing view of an organization row."""

    id: UUID
    name: str
    slug: str | None
    invoice_prefix: str | None
    invoice_next_number: int
    company_email: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
