"""Payment domain models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """How the client paid."""

    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    OTHER = "other"


class PaymentCreate(BaseModel):
    """
    Data required to record a payment.

    Amount limits (positive, within balance due) are enforced by the ledger
    against the live balance, not here.
    """

    amount: Decimal
    payment_date: datetime
    payment_method: PaymentMethod
    reference: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    invoice_id: UUID
    organization_id: UUID
    amount: Decimal
    payment_date: datetime
    payment_method: PaymentMethod
    reference: str | None
    notes: str | None
    created_by: UUID
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentStats(BaseModel):
    """Organization-wide payment totals."""

    total_payments: int
    total_amount: Decimal
