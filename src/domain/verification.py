"""
Verification handler - Redeems a token and marks the login identity verified.

The token is consumed before the identity is updated. If the update
fails the token is already gone and the client cannot retry with it;
single-use tokens are favored over retryability.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from .exceptions import InvalidOrExpiredToken, TokenNotFound, VerificationPersistFailed
from .identities import LoginIdentityRegistry
from .tokens import TokenStore

logger = logging.getLogger(__name__)


@dataclass
class VerificationHandler:
    """Domain service for login identity verification."""

    tokens: TokenStore
    registry: LoginIdentityRegistry

    async def verify(self, token: str) -> UUID:
        """
        Redeem a verification token.

        Args:
            token: Opaque token delivered by the registration saga

        Returns:
            Id of the user whose identity was verified

        Raises:
            InvalidOrExpiredToken: token unknown, expired or already used
            VerificationPersistFailed: token consumed but identity not updated
            StoreUnavailable: token store unreachable (token untouched)
        """
        try:
            claim = await self.tokens.redeem(token)
        except TokenNotFound as e:
            logger.warning("Verification attempted with an invalid or expired token")
            raise InvalidOrExpiredToken() from e

        try:
            await self.registry.mark_verified(claim.subject_id, claim.identity_kind)
        except Exception as e:
            logger.error(
                "Token for user '%s' consumed but verification not persisted. %s",
                claim.subject_id,
                e,
            )
            raise VerificationPersistFailed(cause=e) from e

        logger.info(
            "Successfully verified login identity for user with id '%s'.", claim.subject_id
        )
        return claim.subject_id
