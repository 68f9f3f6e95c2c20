"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc
from utils.request_context import (
    get_current_user_id,
    get_current_organization_id,
    set_request_context,
    clear_request_context,
    request_context,
)
