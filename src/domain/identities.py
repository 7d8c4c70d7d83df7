"""
Login identity registry - Per-kind creation, delivery and verification.

Each LoginIdentityType supplies:
- a creation routine (validate, normalize, hash secrets before persistence)
- a delivery target for notifications
- a verification-completion routine

Dispatch is a ``match`` over the closed variant set ending in
``assert_never`` so an unhandled kind is caught by the type checker.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import assert_never
from uuid import UUID

import bcrypt

from .exceptions import DuplicateIdentity, IdentityNotFound, ValidationFailed
from .models import (
    EmailPassword,
    LoginIdentity,
    LoginIdentityType,
    StoredEmailPassword,
    StoredLoginIdentity,
)
from .ports import IdentityRepository

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_EMAIL_LENGTH = 254
# bcrypt only considers the first 72 bytes of input
MAX_PASSWORD_BYTES = 72


@dataclass
class LoginIdentityRegistry:
    """Store/validate abstraction over login identity kinds."""

    repository: IdentityRepository
    bcrypt_cost: int = 10

    def validate(self, identity: LoginIdentity) -> LoginIdentity:
        """
        Check the credential format and return its normalized form.

        Raises:
            ValidationFailed: credential fails format checks
        """
        match identity:
            case EmailPassword(email=email, password=password):
                normalized = self._normalize_email(email)
                if len(normalized) > MAX_EMAIL_LENGTH or not _EMAIL_PATTERN.match(normalized):
                    raise ValidationFailed(f"Malformed email address '{email}'")
                if not password:
                    raise ValidationFailed("Password must not be empty")
                if len(password.encode()) > MAX_PASSWORD_BYTES:
                    raise ValidationFailed(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
                return EmailPassword(email=normalized, password=password)
            case _:
                assert_never(identity)

    async def add(self, user_id: UUID, identity: LoginIdentity) -> StoredLoginIdentity:
        """
        Validate, hash and persist a login identity for the user.

        Raises:
            ValidationFailed: credential fails format checks
            DuplicateIdentity: identity of this kind or address already exists
            StoreFailure: persistence error
        """
        identity = self.validate(identity)
        # bcrypt is CPU bound; keep it off the event loop
        record = await asyncio.to_thread(self._to_record, user_id, identity)

        created = await self.repository.create_identity(record)
        if not created:
            raise DuplicateIdentity(
                f"A {record.kind.value} login identity already exists for this user or address"
            )

        logger.debug("Attached %s login identity to user '%s'", record.kind.value, user_id)
        return record

    def delivery_target(self, identity: LoginIdentity | StoredLoginIdentity) -> str:
        """Address verification messages for this identity are sent to."""
        match identity:
            case EmailPassword(email=email) | StoredEmailPassword(email=email):
                return self._normalize_email(email)
            case _:
                assert_never(identity)

    async def mark_verified(self, user_id: UUID, kind: LoginIdentityType) -> None:
        """
        Flip the identity's verified flag. Verifying twice is a no-op.

        Raises:
            IdentityNotFound: no identity of this kind for the user
            StoreFailure: persistence error
        """
        found = await self.repository.update_identity_verified(user_id, kind)
        if not found:
            raise IdentityNotFound(f"No {kind.value} login identity for user '{user_id}'")

    async def get(self, user_id: UUID, kind: LoginIdentityType) -> StoredLoginIdentity | None:
        return await self.repository.fetch_identity(user_id, kind)

    def _to_record(self, user_id: UUID, identity: LoginIdentity) -> StoredLoginIdentity:
        match identity:
            case EmailPassword(email=email, password=password):
                salt = bcrypt.gensalt(rounds=self.bcrypt_cost)
                password_hash = bcrypt.hashpw(password.encode(), salt)
                return StoredEmailPassword(
                    user_id=user_id,
                    email=email,
                    password_hash=password_hash.decode(),
                    salt=salt.decode(),
                )
            case _:
                assert_never(identity)

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()
