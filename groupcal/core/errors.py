"""Domain error taxonomy and its translation to HTTP responses.

Services raise these; routes never build error responses by hand. Every
error reaches the client as ``{"success": false, "message": ...}``.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(DomainError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class AuthenticationError(DomainError):
    """No usable caller identity on the request."""

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"


class ForbiddenError(DomainError):
    """Caller lacks the capability or an active membership."""

    status_code = status.HTTP_403_FORBIDDEN
    message = "Permission denied"


class NotFoundError(DomainError):
    """Entity absent, soft-deleted, or not addressed to the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class ConflictError(DomainError):
    """Duplicate membership, already-responded invitation, non-pending review target."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Conflict"


class InternalError(DomainError):
    """Storage failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error_response(exc.status_code, InternalError.message)
    return _error_response(exc.status_code, exc.message)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = ValidationError.message
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, InternalError.message)


def register_error_handlers(app: FastAPI) -> None:
    """Attach the translation handlers to the application."""
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
