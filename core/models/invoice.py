"""Invoice domain models.

Amounts are fixed-point Decimals with 2 fractional digits, matching the
NUMERIC(12, 2) columns they're stored in. Tax rate is a percentage (0-100).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from core.calculator import LineInput
from core.status import InvoiceStatus


class InvoiceItemInput(BaseModel):
    """One line item as entered on the invoice form."""

    description: str = Field(..., min_length=1, max_length=1000)
    quantity: int = Field(..., ge=1)
    rate: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)

    def to_line(self) -> LineInput:
        return LineInput(description=self.description, quantity=self.quantity, rate=self.rate)


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    client_id: UUID
    date: datetime
    due_date: datetime
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    notes: str | None = Field(None, max_length=5000)
    terms: str | None = Field(None, max_length=5000)
    items: list[InvoiceItemInput] = Field(..., min_length=1)


class InvoiceUpdate(InvoiceCreate):
    """
    Full replacement of an invoice's editable fields.

    Items are replaced wholesale, the same as on the edit form.
    """


class InvoiceItem(BaseModel):
    """Line item as stored."""

    id: UUID
    invoice_id: UUID
    description: str
    quantity: int
    rate: Decimal
    amount: Decimal
    sort_order: int

    model_config = {"from_attributes": True}


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    organization_id: UUID
    client_id: UUID
    created_by: UUID
    invoice_number: str
    status: InvoiceStatus
    date: datetime
    due_date: datetime
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    notes: str | None
    terms: str | None
    sent_at: datetime | None
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime
    items: list[InvoiceItem] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED
