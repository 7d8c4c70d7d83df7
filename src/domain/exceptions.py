"""
Domain exceptions - Semantic error types for registration and verification.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

Every error carries a stable integer ``code`` and a human readable
``message``; the HTTP layer renders both into the structured error body.
Saga step errors additionally carry the ``step`` reached and the
underlying ``cause``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from .models import SagaState, User


class AccountsError(Exception):
    """Base class for all account domain errors."""

    code: int = 1000
    default_message: str = "Account operation failed"

    def __init__(self, message: str | None = None, *, cause: BaseException | None = None) -> None:
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)

    @property
    def description(self) -> str | None:
        """Underlying cause rendered as text, if any."""
        if self.cause is None:
            return None
        return str(self.cause) or type(self.cause).__name__


# Login identity errors


class IdentityError(AccountsError):
    """Base class for login identity registry errors."""

    code = 1100
    default_message = "Login identity operation failed"


class ValidationFailed(IdentityError):
    """Submitted credential failed format checks."""

    code = 1101
    default_message = "Login identity failed validation"


class DuplicateIdentity(IdentityError):
    """A login identity of this kind already exists for the user or address."""

    code = 1102
    default_message = "Login identity already exists"


class IdentityNotFound(IdentityError):
    """No login identity of the requested kind exists for the user."""

    code = 1103
    default_message = "Login identity not found"


class StoreFailure(IdentityError):
    """Relational store rejected or failed an operation."""

    code = 1104
    default_message = "Relational store operation failed"


# Token store errors


class StoreUnavailable(AccountsError):
    """Key-value store unreachable, timed out or pool exhausted."""

    code = 1200
    default_message = "Token store unavailable"


class TokenNotFound(AccountsError):
    """Token absent, expired or already redeemed."""

    code = 1201
    default_message = "Token not found"


# Notification errors


class NotificationError(AccountsError):
    """Notifier could not deliver a message."""

    code = 1300
    default_message = "Notification delivery failed"


# Registration saga errors


class RegistrationError(AccountsError):
    """Base class for registration saga errors."""

    code = 2000
    default_message = "Registration failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        cause: BaseException | None = None,
        step: SagaState | None = None,
        user_id: UUID | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.step = step
        self.user_id = user_id


class UserCreationFailed(RegistrationError):
    """User record could not be created. Nothing was written."""

    code = 2001
    default_message = "Error occurred while trying to create new user"


class IdentityAttachFailed(RegistrationError):
    """Login identity could not be attached. The user was rolled back."""

    code = 2002
    default_message = "Error occurred while trying to attach login identity"


class TokenIssueFailed(RegistrationError):
    """Verification token could not be issued. The user was rolled back."""

    code = 2003
    default_message = "Error occurred while trying to issue verification token"


class NotificationFailed(RegistrationError):
    """
    Verification message could not be delivered.

    The user and identity persist unverified; the issued token stays valid.
    """

    code = 2004
    default_message = "Error occurred while trying to send verification email"

    def __init__(self, message: str | None = None, *, user: User, **kwargs) -> None:
        super().__init__(message, user_id=user.id, **kwargs)
        self.user = user


class CompensationFailed(RegistrationError):
    """
    Rollback after a failed step did not complete.

    Partial state (an orphaned user) may remain and needs operator
    reconciliation. ``cause`` is the step error that triggered the rollback.
    """

    code = 2005
    default_message = "Registration failed and rollback did not complete"

    def __init__(
        self,
        message: str | None = None,
        *,
        compensation_errors: list[BaseException],
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.compensation_errors = compensation_errors

    @property
    def description(self) -> str | None:
        parts = [f"step error: {super().description}"]
        parts.extend(f"rollback error: {err}" for err in self.compensation_errors)
        return "; ".join(parts)


# Verification errors


class VerificationError(AccountsError):
    """Base class for verification handler errors."""

    code = 3000
    default_message = "Failed while trying to verify login identity"


class InvalidOrExpiredToken(VerificationError):
    """Token was never issued, expired, or was already redeemed."""

    code = 3001
    default_message = "Invalid or expired verification token"


class VerificationPersistFailed(VerificationError):
    """
    Token redeemed but the identity could not be marked verified.

    The token is already consumed; retrying with it cannot succeed.
    """

    code = 3002
    default_message = "Failed while trying to persist login identity verification"
