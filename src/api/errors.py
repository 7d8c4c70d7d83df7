"""
API error handling - Maps domain errors to HTTP responses.

Every error is rendered as ErrorResponse ``{code, message, description?}``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.models import ErrorResponse
from src.domain.exceptions import (
    AccountsError,
    DuplicateIdentity,
    IdentityAttachFailed,
    IdentityError,
    InvalidOrExpiredToken,
    NotificationFailed,
    StoreUnavailable,
    TokenIssueFailed,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


def status_for(error: AccountsError) -> int:
    """HTTP status code for a domain error."""
    match error:
        case ValidationFailed() | IdentityAttachFailed(cause=ValidationFailed()):
            return 422
        case DuplicateIdentity() | IdentityAttachFailed(cause=DuplicateIdentity()):
            return 409
        case InvalidOrExpiredToken():
            return 400
        case StoreUnavailable() | TokenIssueFailed():
            return 503
        case NotificationFailed():
            return 502
        case _:
            return 500


def error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def accounts_error_handler(_request: Request, exc: AccountsError) -> JSONResponse:
    """
    Handle domain errors raised by routes.

    Args:
        request: The incoming request.
        exc: The domain error that was raised.

    Returns:
        JSONResponse with the error body and mapped status code.
    """
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Request failed with %s: %s", type(exc).__name__, exc.message)
    return error_response(status_code, error_body(exc))


def error_body(error: AccountsError) -> ErrorResponse:
    """
    Render a domain error as the standard error body.

    An identity attach failure caused by a registry error reports the
    registry error (e.g. DuplicateIdentity) and keeps the attach step as
    the description.
    """
    match error:
        case IdentityAttachFailed(cause=IdentityError() as cause):
            return ErrorResponse(
                code=cause.code,
                message=cause.message,
                description=error.message,
            )
        case _:
            return ErrorResponse(
                code=error.code, message=error.message, description=error.description
            )


def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation errors in the standard error body."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    return error_response(
        422,
        ErrorResponse(
            code=ValidationFailed.code,
            message="Request validation failed",
            description=details or None,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccountsError, accounts_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
