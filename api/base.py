"""Unified API response format, error codes and error payloads."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from core.exceptions import ReconciliationRequiredError
from core.money import format_money
from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Structured context for the error")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def success_response(data: Any) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=str(uuid4()),
        ),
    )


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message, details=details),
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=str(uuid4()),
        ),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Identity
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Invoice / payment consistency
    RECONCILIATION_REQUIRED = "RECONCILIATION_REQUIRED"
    CONFLICT = "CONFLICT"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ReconciliationDetails(BaseModel):
    """
    Body of a RECONCILIATION_REQUIRED error.

    Lists every payment on the invoice so the user can pick which to remove;
    resubmit the edit with `payment_ids_to_remove` covering at least
    `excess_amount`.
    """

    new_total: str
    excess_amount: str
    payments: list[dict[str, Any]]

    @classmethod
    def from_error(cls, exc: ReconciliationRequiredError) -> "ReconciliationDetails":
        return cls(
            new_total=format_money(exc.new_total),
            excess_amount=format_money(exc.excess_amount),
            payments=[p.model_dump(mode="json") for p in exc.payments],
        )
