"""Typed exceptions for billing failures."""

from decimal import Decimal
from typing import Any


class BillingError(Exception):
    """Base class for invoicing and payment errors."""


class ValidationError(BillingError, ValueError):
    """
    Malformed input: negative rate, zero quantity, overpayment, illegal
    status target. Nothing was written.
    """


class NotFoundError(BillingError, ValueError):
    """Referenced invoice, client or payment does not exist."""


class OwnershipError(BillingError):
    """
    Referenced entity exists but belongs to another organization.

    Surfaced to callers exactly like NotFoundError so tenants can't discover
    each other's ids.
    """


class ConflictError(BillingError):
    """
    Concurrent modification detected (lock timeout, serialization failure,
    duplicate invoice number). Safe to retry the whole operation.
    """


class PersistenceError(BillingError):
    """
    Storage failed and the transaction was rolled back.

    Nothing committed, so retrying cannot duplicate a financial effect.
    """


class ReconciliationRequiredError(BillingError):
    """
    Edit would drop the invoice total below what has already been paid.

    Carries the current payments so the caller can ask the user which ones
    to remove, then retry the edit with that removal set.
    """

    def __init__(self, payments: list[Any], excess_amount: Decimal, new_total: Decimal):
        self.payments = payments
        self.excess_amount = excess_amount
        self.new_total = new_total
        super().__init__(
            f"Payments exceed new invoice total {new_total} by {excess_amount}. "
            "Select payments to remove before saving."
        )
