"""
Domain models - Users, login identities and verification token claims.

Login identities form a closed variant set keyed by LoginIdentityType.
Adding a kind means extending LoginIdentityType, the LoginIdentity and
StoredLoginIdentity unions, and every ``match`` that ends in
``assert_never`` (registry, saga template selection, repository tables).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class LoginIdentityType(str, Enum):
    """Supported login identity kinds."""

    EMAIL = "email"


class SagaState(str, Enum):
    """
    Registration saga states.

    Forward path:
        START -> USER_CREATED -> IDENTITY_ATTACHED -> TOKEN_ISSUED -> NOTIFICATION_SENT

    A rollback after USER_CREATED returns the run to START.
    """

    START = "START"
    USER_CREATED = "USER_CREATED"
    IDENTITY_ATTACHED = "IDENTITY_ATTACHED"
    TOKEN_ISSUED = "TOKEN_ISSUED"
    NOTIFICATION_SENT = "NOTIFICATION_SENT"


@dataclass(frozen=True)
class User:
    """Durable user record."""

    id: UUID
    username: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class EmailPassword:
    """Email + password credential as submitted by a client."""

    email: str
    password: str

    @property
    def kind(self) -> LoginIdentityType:
        return LoginIdentityType.EMAIL

    def __repr__(self) -> str:
        return f"EmailPassword(email={self.email!r}, password='***')"


@dataclass(frozen=True)
class StoredEmailPassword:
    """Persisted email + password identity. Never holds the plaintext password."""

    user_id: UUID
    email: str
    password_hash: str
    salt: str
    verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def kind(self) -> LoginIdentityType:
        return LoginIdentityType.EMAIL


LoginIdentity = EmailPassword
StoredLoginIdentity = StoredEmailPassword


@dataclass(frozen=True)
class NewUserRequest:
    """Input to the registration saga."""

    username: str
    identity: LoginIdentity


@dataclass(frozen=True)
class TokenClaim:
    """What a verification token resolves to."""

    subject_id: UUID
    identity_kind: LoginIdentityType
    issued_at: datetime
