"""
Domain layer - Pure business logic with zero framework imports.

This package contains the registration saga and login identity
verification logic. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .exceptions import (
    AccountsError,
    CompensationFailed,
    DuplicateIdentity,
    IdentityAttachFailed,
    IdentityNotFound,
    InvalidOrExpiredToken,
    NotificationError,
    NotificationFailed,
    RegistrationError,
    StoreFailure,
    StoreUnavailable,
    TokenIssueFailed,
    TokenNotFound,
    UserCreationFailed,
    ValidationFailed,
    VerificationError,
    VerificationPersistFailed,
)
from .identities import LoginIdentityRegistry
from .models import (
    EmailPassword,
    LoginIdentity,
    LoginIdentityType,
    NewUserRequest,
    SagaState,
    StoredEmailPassword,
    StoredLoginIdentity,
    TokenClaim,
    User,
)
from .ports import IdentityRepository, KeyValueStore, Notifier, UserRepository
from .registration import RegistrationSaga
from .tokens import TokenStore
from .verification import VerificationHandler

__all__ = [
    "AccountsError",
    "CompensationFailed",
    "DuplicateIdentity",
    "EmailPassword",
    "IdentityAttachFailed",
    "IdentityNotFound",
    "IdentityRepository",
    "InvalidOrExpiredToken",
    "KeyValueStore",
    "LoginIdentity",
    "LoginIdentityRegistry",
    "LoginIdentityType",
    "NewUserRequest",
    "NotificationError",
    "NotificationFailed",
    "Notifier",
    "RegistrationError",
    "RegistrationSaga",
    "SagaState",
    "StoreFailure",
    "StoreUnavailable",
    "StoredEmailPassword",
    "StoredLoginIdentity",
    "TokenClaim",
    "TokenIssueFailed",
    "TokenNotFound",
    "TokenStore",
    "UserCreationFailed",
    "UserRepository",
    "ValidationFailed",
    "VerificationError",
    "VerificationHandler",
    "VerificationPersistFailed",
]
