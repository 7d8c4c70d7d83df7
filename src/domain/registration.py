"""
Registration saga - User creation, identity attachment, token issue, notification.

The relational store and the key-value store cannot share a transaction,
so registration runs as a saga: each forward step that leaves durable
state behind pushes a compensating action, and a failing step runs the
pushed actions in reverse order.

Saga states (see SagaState):

    START -> USER_CREATED -> IDENTITY_ATTACHED -> TOKEN_ISSUED -> NOTIFICATION_SENT

Failure handling per step:
    user creation      UserCreationFailed, nothing to compensate
    identity attach    IdentityAttachFailed, user deleted
    token issue        TokenIssueFailed, user deleted (identity cascades)
    notification       NotificationFailed, NOT compensated

Notification failure is treated as operational: the user and identity stay
unverified and the issued token remains valid for a later resend. Changing
this to a full rollback trades recoverable accounts for a guaranteed-clean
store.

If a compensating action itself fails, CompensationFailed is raised and
logged at CRITICAL; an orphaned user may remain for operator reconciliation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import NoReturn, assert_never
from uuid import UUID

from .exceptions import (
    CompensationFailed,
    IdentityAttachFailed,
    NotificationFailed,
    RegistrationError,
    TokenIssueFailed,
    UserCreationFailed,
    ValidationFailed,
)
from .identities import LoginIdentityRegistry
from .models import LoginIdentityType, NewUserRequest, SagaState, User
from .ports import Notifier, UserRepository
from .tokens import TokenStore

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[None]]

MAX_USERNAME_LENGTH = 64


def verification_template(kind: LoginIdentityType) -> str:
    """Template used to deliver a verification token for this identity kind."""
    match kind:
        case LoginIdentityType.EMAIL:
            return "verification_email"
        case _:
            assert_never(kind)


def _collect_outcome(task: asyncio.Future) -> None:
    # Saga errors are already logged; mark them retrieved
    if not task.cancelled():
        task.exception()


@dataclass
class _SagaRun:
    """Per-request saga bookkeeping. Never shared between requests."""

    request: NewUserRequest
    state: SagaState = SagaState.START
    user: User | None = None
    compensations: list[tuple[str, Compensation]] = field(default_factory=list)

    def advance(self, state: SagaState) -> None:
        logger.debug("Registration saga %s -> %s", self.state.value, state.value)
        self.state = state


@dataclass
class RegistrationSaga:
    """
    Domain service for user registration.

    Orchestrates the registration flow: credential validation, user
    creation, identity attachment, token issue and verification message.
    """

    users: UserRepository
    registry: LoginIdentityRegistry
    tokens: TokenStore
    notifier: Notifier

    async def register(self, request: NewUserRequest) -> User:
        """
        Register a new user and send a verification token.

        Once the first write starts, the saga is shielded from caller
        cancellation and always finishes in a terminal or compensated state.

        Args:
            request: Username and login identity credential

        Returns:
            The created user

        Raises:
            ValidationFailed: credential or username fails format checks
            UserCreationFailed: user row could not be created
            IdentityAttachFailed: identity rejected; ``cause`` holds the
                registry error (e.g. DuplicateIdentity)
            TokenIssueFailed: token store failed
            NotificationFailed: message not delivered; user persists
            CompensationFailed: rollback incomplete
        """
        username = request.username.strip()
        if not username or len(username) > MAX_USERNAME_LENGTH:
            raise ValidationFailed(
                f"Username must be between 1 and {MAX_USERNAME_LENGTH} characters"
            )
        identity = self.registry.validate(request.identity)
        request = replace(request, username=username, identity=identity)

        task = asyncio.ensure_future(self._execute(_SagaRun(request)))
        task.add_done_callback(_collect_outcome)
        return await asyncio.shield(task)

    async def _execute(self, run: _SagaRun) -> User:
        request = run.request

        # Step 1: durable user record
        try:
            user = await self.users.create_user(request.username)
        except Exception as e:
            logger.error("Failed while trying to create new user. %s", e)
            raise UserCreationFailed(cause=e, step=run.state) from e
        run.user = user
        run.compensations.append((f"delete user '{user.id}'", self._compensate_user(user.id)))
        run.advance(SagaState.USER_CREATED)

        # Step 2: login identity
        try:
            await self.registry.add(user.id, request.identity)
        except Exception as e:
            await self._fail(
                run, IdentityAttachFailed(cause=e, step=run.state, user_id=user.id)
            )
        run.advance(SagaState.IDENTITY_ATTACHED)

        # Step 3: verification token; identity rows cascade with the user
        kind = request.identity.kind
        try:
            token = await self.tokens.issue(user.id, kind)
        except Exception as e:
            await self._fail(
                run, TokenIssueFailed(cause=e, step=run.state, user_id=user.id)
            )
        run.advance(SagaState.TOKEN_ISSUED)

        # Step 4: notification, deliberately not compensated
        try:
            await self.notifier.send(
                verification_template(kind),
                self.registry.delivery_target(request.identity),
                user.username,
                token,
            )
        except Exception as e:
            logger.error(
                "Error occurred while trying to send verification email to user with id '%s'. %s",
                user.id,
                e,
            )
            raise NotificationFailed(user=user, cause=e, step=run.state) from e
        run.advance(SagaState.NOTIFICATION_SENT)

        logger.info("Created new user with id '%s'.", user.id)
        return user

    def _compensate_user(self, user_id: UUID) -> Compensation:
        async def delete_user() -> None:
            deleted = await self.users.delete_user(user_id)
            if not deleted:
                logger.warning("User '%s' was already gone during rollback", user_id)

        return delete_user

    async def _fail(self, run: _SagaRun, error: RegistrationError) -> NoReturn:
        """Run compensations in reverse order, then raise the step error."""
        logger.error("%s. %s", error.message, error.cause)

        compensation_errors: list[BaseException] = []
        for description, action in reversed(run.compensations):
            try:
                await action()
            except Exception as e:
                logger.error("Rollback step failed: %s. %s", description, e)
                compensation_errors.append(e)
        run.compensations.clear()

        if compensation_errors:
            logger.critical(
                "Registration rollback incomplete; user '%s' may be orphaned and needs "
                "reconciliation",
                error.user_id,
            )
            raise CompensationFailed(
                cause=error,
                compensation_errors=compensation_errors,
                step=error.step,
                user_id=error.user_id,
            ) from error

        run.advance(SagaState.START)
        raise error from error.cause
