"""Client (bill-to party) domain models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr


class ClientCreate(BaseModel):
    """Data required to create a client."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=255)
    country: str | None = Field(None, max_length=255)
    tax_id: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=10000)


class ClientUpdate(BaseModel):
    """Data that can be updated on a client. All fields optional."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=255)
    country: str | None = Field(None, max_length=255)
    tax_id: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=10000)


class Client(BaseModel):
    """Full client entity as stored."""

    id: UUID
    organization_id: UUID
    name: str
    email: str | None
    phone: str | None
    address: str | None
    city: str | None
    country: str | None
    tax_id: str | None
    notes: str | None
    balance: Decimal = Decimal("0.00")
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
