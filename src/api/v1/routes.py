"""
API v1 routes.

Defines REST endpoints for user registration and login identity verification.
Domain errors raised here are rendered by the handlers in ``src.api.errors``.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from src.adapters.repository.postgres import PostgresUserRepository
from src.api.dependencies import (
    get_registration_saga,
    get_user_repository,
    get_verification_handler,
)
from src.api.errors import error_response
from src.api.models import ErrorResponse, RegisterRequest, UserResponse, VerifyRequest
from src.domain.registration import RegistrationSaga
from src.domain.verification import VerificationHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["v1"])

USER_NOT_FOUND_CODE = 4004


def _user_not_found(message: str) -> JSONResponse:
    return error_response(
        status.HTTP_404_NOT_FOUND, ErrorResponse(code=USER_NOT_FOUND_CODE, message=message)
    )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Login identity already exists"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        502: {"model": ErrorResponse, "description": "Verification email not sent"},
        503: {"model": ErrorResponse, "description": "Token store unavailable"},
    },
    summary="Register a new user",
    description="Create a user with a login identity. "
    "A single-use verification token is emailed to the identity's address.",
)
async def register(
    request_data: RegisterRequest,
    request: Request,
    response: Response,
    saga: RegistrationSaga = Depends(get_registration_saga),
) -> UserResponse:
    """
    Register a new user and send a verification token.

    - **username**: Display name
    - **identity**: Login identity credential (email + password)

    Returns the created user with a Location header pointing at it.
    """
    logger.debug("Creating new user...")
    user = await saga.register(request_data.to_domain())
    response.headers["Location"] = f"{str(request.url).rstrip('/')}/{user.id}"
    return UserResponse.from_domain(user)


@router.post(
    "/verify",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or expired token"},
        500: {"model": ErrorResponse, "description": "Verification not persisted"},
        503: {"model": ErrorResponse, "description": "Token store unavailable"},
    },
    summary="Verify a login identity",
    description="Redeem the verification token sent during registration. "
    "Tokens are single-use.",
)
async def verify(
    request_data: VerifyRequest,
    handler: VerificationHandler = Depends(get_verification_handler),
) -> Response:
    """Redeem a verification token and mark the login identity verified."""
    logger.debug("Verifying login identity...")
    await handler.verify(request_data.token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
    summary="Get a user",
)
async def get_user(
    user_id: UUID,
    users: PostgresUserRepository = Depends(get_user_repository),
) -> UserResponse | JSONResponse:
    logger.debug("Requesting user with id '%s'...", user_id)
    user = await users.fetch_user(user_id)
    if user is None:
        logger.warning("No user found with id '%s'.", user_id)
        return _user_not_found(f"No user with id '{user_id}'")
    return UserResponse.from_domain(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
    summary="Delete a user",
    description="Administrative delete; login identities are removed with the user.",
)
async def delete_user(
    user_id: UUID,
    users: PostgresUserRepository = Depends(get_user_repository),
) -> Response:
    logger.debug("Deleting user with id '%s'...", user_id)
    deleted = await users.delete_user(user_id)
    if not deleted:
        logger.warning("Trying to delete non-existent user with id '%s'.", user_id)
        return _user_not_found(f"Trying to delete non-existent user with id '{user_id}'")
    logger.info("Deleted user with id '%s'.", user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
