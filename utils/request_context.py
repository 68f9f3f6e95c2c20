"""Propagate caller identity (user and active organization) through the call stack."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_organization_id: ContextVar[UUID | None] = ContextVar(
    "current_organization_id", default=None
)


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set.
    If you're in a code path that requires identity and it's not set,
    that's a bug in the caller.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "organization-scoped code outside of an authenticated request."
        )
    return user_id


def get_current_organization_id() -> UUID:
    """
    Get the active organization (tenant) ID from context.

    Raises RuntimeError if no organization is active.
    """
    organization_id = _current_organization_id.get()
    if organization_id is None:
        raise RuntimeError(
            "No active organization set. Financial operations are always "
            "scoped to exactly one organization."
        )
    return organization_id


def set_request_context(user_id: UUID, organization_id: UUID) -> None:
    """
    Set caller identity in context.

    Called by the identity middleware after the external provider has
    resolved the session.
    """
    _current_user_id.set(user_id)
    _current_organization_id.set(organization_id)


def clear_request_context() -> None:
    """
    Clear caller identity.

    Must be called in a finally block to prevent context leakage.
    """
    _current_user_id.set(None)
    _current_organization_id.set(None)


@contextmanager
def request_context(user_id: UUID, organization_id: UUID):
    """
    Context manager for temporarily acting as a user inside an organization.

    Useful for:
    - Tests
    - Background jobs that iterate over organizations (overdue sweep)

    Example:
        with request_context(user_id, org_id):
            invoice = invoice_service.get_by_id(invoice_id)
    """
    previous_user = _current_user_id.get()
    previous_org = _current_organization_id.get()
    set_request_context(user_id, organization_id)
    try:
        yield
    finally:
        _current_user_id.set(previous_user)
        _current_organization_id.set(previous_org)
