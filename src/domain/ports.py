"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.

Adapters translate their own failures into domain exceptions:
relational adapters raise StoreFailure, key-value adapters raise
StoreUnavailable, notifiers raise NotificationError.
"""

from typing import Protocol
from uuid import UUID

from .models import LoginIdentityType, StoredLoginIdentity, User


class UserRepository(Protocol):
    """Port interface for durable user records."""

    async def create_user(self, username: str) -> User:
        """
        Insert a new user row.

        Args:
            username: Display name for the account

        Returns:
            The created user with its generated id and timestamps
        """
        ...

    async def fetch_user(self, user_id: UUID) -> User | None:
        """Return the user, or None if absent."""
        ...

    async def delete_user(self, user_id: UUID) -> bool:
        """
        Delete a user and, by cascade, its login identities.

        Returns:
            True if a row was deleted, False if the user did not exist
        """
        ...

    async def list_users(self) -> list[User]:
        """Return all users ordered by creation time."""
        ...


class IdentityRepository(Protocol):
    """Port interface for login identity persistence."""

    async def create_identity(self, identity: StoredLoginIdentity) -> bool:
        """
        Insert a login identity record.

        The store enforces one record per (user, kind) and one user per
        email address via uniqueness constraints.

        Returns:
            True if inserted, False on a uniqueness conflict
        """
        ...

    async def fetch_identity(
        self, user_id: UUID, kind: LoginIdentityType
    ) -> StoredLoginIdentity | None:
        """Return the identity of the given kind for the user, or None."""
        ...

    async def update_identity_verified(self, user_id: UUID, kind: LoginIdentityType) -> bool:
        """
        Set the verified flag. Already verified records are left untouched.

        Returns:
            True if the identity exists, False otherwise
        """
        ...


class KeyValueStore(Protocol):
    """Port interface for the ephemeral key-value store."""

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key, expiring after ttl_seconds."""
        ...

    async def replace_with_ttl(self, key: str, value: str, ttl_seconds: int) -> str | None:
        """Atomically store value under key and return the previous value."""
        ...

    async def get_and_delete(self, key: str) -> str | None:
        """Atomically read and remove key. None if absent or expired."""
        ...

    async def delete(self, key: str) -> None:
        """Remove key if present."""
        ...

    async def ping(self) -> None:
        """Raise StoreUnavailable if the backend cannot be reached."""
        ...


class Notifier(Protocol):
    """Port interface for outbound verification messages."""

    async def send(
        self, template_name: str, recipient: str, subject_username: str, token: str
    ) -> None:
        """
        Render the named template and deliver it.

        Args:
            template_name: Template selected by login identity kind
            recipient: Delivery target (e.g. email address)
            subject_username: Username rendered into the message
            token: Verification token to deliver
        """
        ...
