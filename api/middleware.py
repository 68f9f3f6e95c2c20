"""Request-scoped middleware for API requests."""

import logging
from typing import Callable
from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.request_context import set_request_context, clear_request_context

logger = logging.getLogger(__name__)

# Returns (user_id, organization_id) for an authenticated request, None otherwise
IdentityResolver = Callable[[Request], tuple[UUID, UUID] | None]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def header_identity_resolver(request: Request) -> tuple[UUID, UUID] | None:
    """
    Read identity from headers set by the upstream auth gateway.

    Expects X-User-ID and X-Organization-ID. Missing or malformed values
    mean the request is unauthenticated.
    """
    user_id = request.headers.get("X-User-ID")
    organization_id = request.headers.get("X-Organization-ID")
    if not user_id or not organization_id:
        return None
    try:
        return UUID(user_id), UUID(organization_id)
    except ValueError:
        logger.warning(f"Malformed identity headers on {request.url.path}")
        return None


class IdentityMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves the caller and sets request context.

    For protected routes:
    1. Resolves (user_id, organization_id) via the injected resolver
    2. Sets both in request.state and request context (for RLS)
    3. Clears context after request completes

    Public paths bypass identity resolution entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, resolver: IdentityResolver):
        super().__init__(app)
        self._resolver = resolver

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        identity = self._resolver(request)
        if identity is None:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        user_id, organization_id = identity
        set_request_context(user_id, organization_id)
        request.state.user_id = user_id
        request.state.organization_id = organization_id

        try:
            response = await call_next(request)
            return response
        finally:
            # Always clear context
            clear_request_context()
