"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes, ReconciliationDetails
from core.exceptions import (
    ConflictError,
    NotFoundError,
    OwnershipError,
    PersistenceError,
    ReconciliationRequiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _json_error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, details).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(ValidationError)
    async def billing_validation_handler(request: Request, exc: ValidationError):
        return _json_error(400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _json_error(404, ErrorCodes.NOT_FOUND, str(exc))

    @app.exception_handler(OwnershipError)
    async def ownership_handler(request: Request, exc: OwnershipError):
        # Same response as a missing row
        return _json_error(404, ErrorCodes.NOT_FOUND, str(exc))

    @app.exception_handler(ReconciliationRequiredError)
    async def reconciliation_handler(request: Request, exc: ReconciliationRequiredError):
        return _json_error(
            409,
            ErrorCodes.RECONCILIATION_REQUIRED,
            str(exc),
            ReconciliationDetails.from_error(exc).model_dump(),
        )

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        logger.warning(f"Conflict on {request.url.path}: {exc}")
        return _json_error(409, ErrorCodes.CONFLICT, "The invoice was modified concurrently, please retry")

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure on {request.url.path}: {exc}")
        return _json_error(503, ErrorCodes.SERVICE_UNAVAILABLE, "Storage is unavailable, nothing was saved")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        # Malformed ids and unknown domains/types from the routers
        return _json_error(400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(PydanticValidationError)
    async def model_validation_handler(request: Request, exc: PydanticValidationError):
        # Action payloads are validated inside the handlers, not by FastAPI
        return _json_error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors(include_url=False)))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json_error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json_error(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
