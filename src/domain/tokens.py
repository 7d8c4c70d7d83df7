"""
Verification token store - Single-use, expiring tokens in the key-value store.

Key layout:
    verification:token:<token>              -> JSON {subject_id, identity_kind, issued_at}
    verification:subject:<kind>:<user_id>   -> <token> (current live token)

Both keys share the same TTL; expiry is enforced by the backend.
Redemption uses a single atomic get-and-delete, so a token can be
consumed at most once. Reissuing swaps the subject key atomically and
then deletes the token it pointed at, leaving one live token per
(subject, kind).
"""

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from .exceptions import StoreUnavailable, TokenNotFound
from .models import LoginIdentityType, TokenClaim
from .ports import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60
TOKEN_BYTES = 32


def token_key(token: str) -> str:
    return f"verification:token:{token}"


def subject_key(subject_id: UUID, identity_kind: LoginIdentityType) -> str:
    return f"verification:subject:{identity_kind.value}:{subject_id}"


@dataclass
class TokenStore:
    """Issues and redeems verification tokens."""

    store: KeyValueStore
    ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS

    async def issue(self, subject_id: UUID, identity_kind: LoginIdentityType) -> str:
        """
        Mint a token for (subject_id, identity_kind), invalidating any prior one.

        The token record is written before the subject index is swapped, so
        concurrent issues for the same subject always converge on the token
        the index finally points at.

        Raises:
            StoreUnavailable: key-value backend unreachable
        """
        token = secrets.token_urlsafe(TOKEN_BYTES)
        payload = json.dumps(
            {
                "subject_id": str(subject_id),
                "identity_kind": identity_kind.value,
                "issued_at": datetime.now(UTC).isoformat(),
            }
        )

        await self.store.set_with_ttl(token_key(token), payload, self.ttl_seconds)
        try:
            previous = await self.store.replace_with_ttl(
                subject_key(subject_id, identity_kind), token, self.ttl_seconds
            )
            if previous is not None and previous != token:
                await self.store.delete(token_key(previous))
                logger.debug("Invalidated prior verification token for user '%s'", subject_id)
        except StoreUnavailable:
            await self._discard(token)
            raise

        return token

    async def _discard(self, token: str) -> None:
        try:
            await self.store.delete(token_key(token))
        except StoreUnavailable as e:
            logger.warning("Could not discard unissued verification token: %s", e)

    async def redeem(self, token: str) -> TokenClaim:
        """
        Atomically consume a token.

        Raises:
            TokenNotFound: token absent, expired or already redeemed
            StoreUnavailable: key-value backend unreachable
        """
        raw = await self.store.get_and_delete(token_key(token))
        if raw is None:
            raise TokenNotFound()

        try:
            data = json.loads(raw)
            return TokenClaim(
                subject_id=UUID(data["subject_id"]),
                identity_kind=LoginIdentityType(data["identity_kind"]),
                issued_at=datetime.fromisoformat(data["issued_at"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Discarding malformed verification token record: %s", e)
            raise TokenNotFound() from e
