"""
Unit tests for RegistrationSaga domain logic.

Tests the saga with in-memory ports to verify:
- Forward path: user, identity, token, notification
- Up-front validation writes nothing
- Compensation (user deleted) on identity attach and token issue failures
- No compensation on notification failure
- CompensationFailed when rollback itself fails
- Completion despite caller cancellation
"""

import asyncio
import gc
import logging
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from src.domain.exceptions import (
    CompensationFailed,
    DuplicateIdentity,
    IdentityAttachFailed,
    NotificationError,
    NotificationFailed,
    StoreFailure,
    StoreUnavailable,
    TokenIssueFailed,
    UserCreationFailed,
    ValidationFailed,
)
from src.domain.identities import LoginIdentityRegistry
from src.domain.models import EmailPassword, LoginIdentityType, NewUserRequest, SagaState
from src.domain.registration import RegistrationSaga, verification_template
from src.domain.tokens import TokenStore
from tests.fakes import (
    TEST_BCRYPT_COST,
    InMemoryIdentityRepository,
    InMemoryUserRepository,
    RecordingNotifier,
)


def new_user(email: str = "a@x.com", password: str = "p", username: str = "alice"):
    return NewUserRequest(username=username, identity=EmailPassword(email=email, password=password))


class UndeletableUserRepository(InMemoryUserRepository):
    """User repository whose deletes always fail."""

    async def delete_user(self, user_id: UUID) -> bool:
        raise StoreFailure("database went away")


class BlockingNotifier(RecordingNotifier):
    """Notifier that waits for a release signal before recording."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def send(
        self, template_name: str, recipient: str, subject_username: str, token: str
    ) -> None:
        self.entered.set()
        await self.release.wait()
        await super().send(template_name, recipient, subject_username, token)


class FailingBlockingNotifier(BlockingNotifier):
    """Notifier that waits for a release signal, then fails."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    async def send(
        self, template_name: str, recipient: str, subject_username: str, token: str
    ) -> None:
        self.entered.set()
        await self.release.wait()
        self.failed = True
        raise NotificationError("smtp down")


class TestForwardPath:
    """Tests for successful registration."""

    @pytest.mark.asyncio
    async def test_register_creates_user(
        self, saga: RegistrationSaga, users: InMemoryUserRepository
    ) -> None:
        user = await saga.register(new_user())

        assert user.username == "alice"
        assert await users.fetch_user(user.id) == user

    @pytest.mark.asyncio
    async def test_register_attaches_unverified_identity(
        self, saga: RegistrationSaga, identities: InMemoryIdentityRepository
    ) -> None:
        user = await saga.register(new_user(email="A@X.com"))

        identity = await identities.fetch_identity(user.id, LoginIdentityType.EMAIL)
        assert identity is not None
        assert identity.email == "a@x.com"
        assert identity.verified is False

    @pytest.mark.asyncio
    async def test_register_sends_verification_template(
        self, saga: RegistrationSaga, notifier: RecordingNotifier
    ) -> None:
        """Notification uses the email template, normalized address and username."""
        await saga.register(new_user(email="  A@X.com  ", username="  alice  "))

        assert len(notifier.sent) == 1
        template, recipient, username, token = notifier.sent[0]
        assert template == "verification_email"
        assert recipient == "a@x.com"
        assert username == "alice"
        assert token

    @pytest.mark.asyncio
    async def test_sent_token_resolves_to_user(
        self, saga: RegistrationSaga, notifier: RecordingNotifier, token_store: TokenStore
    ) -> None:
        user = await saga.register(new_user())

        claim = await token_store.redeem(notifier.last_token)
        assert claim.subject_id == user.id
        assert claim.identity_kind is LoginIdentityType.EMAIL

    def test_email_template_selected_for_email_kind(self) -> None:
        assert verification_template(LoginIdentityType.EMAIL) == "verification_email"


class TestValidation:
    """Tests for up-front validation."""

    @pytest.mark.asyncio
    async def test_malformed_email_writes_nothing(
        self,
        saga: RegistrationSaga,
        users: InMemoryUserRepository,
        notifier: RecordingNotifier,
    ) -> None:
        with pytest.raises(ValidationFailed):
            await saga.register(new_user(email="not-an-email"))

        assert users.users == {}
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_blank_username_writes_nothing(
        self, saga: RegistrationSaga, users: InMemoryUserRepository
    ) -> None:
        with pytest.raises(ValidationFailed):
            await saga.register(new_user(username="   "))

        assert users.users == {}


class TestUserCreationFailure:
    """Tests for step 1 failures."""

    @pytest.mark.asyncio
    async def test_user_creation_failure_is_terminal(
        self, registry: LoginIdentityRegistry, token_store: TokenStore
    ) -> None:
        users = AsyncMock()
        users.create_user.side_effect = StoreFailure("insert failed")
        notifier = RecordingNotifier()
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        with pytest.raises(UserCreationFailed) as exc_info:
            await saga.register(new_user())

        assert exc_info.value.step is SagaState.START
        assert isinstance(exc_info.value.cause, StoreFailure)
        users.delete_user.assert_not_called()
        assert notifier.sent == []


class TestIdentityAttachFailure:
    """Tests for step 2 failures and compensation."""

    @pytest.mark.asyncio
    async def test_duplicate_email_rolls_back_new_user(
        self, saga: RegistrationSaga, users: InMemoryUserRepository
    ) -> None:
        """Registering an address already in use leaves no new user row."""
        existing = await saga.register(new_user(username="first"))

        with pytest.raises(IdentityAttachFailed) as exc_info:
            await saga.register(new_user(username="second"))

        error = exc_info.value
        assert isinstance(error.cause, DuplicateIdentity)
        assert error.step is SagaState.USER_CREATED
        assert error.user_id != existing.id
        assert await users.fetch_user(error.user_id) is None
        assert list(users.users) == [existing.id]

    @pytest.mark.asyncio
    async def test_identity_store_down_deletes_user(
        self,
        users: InMemoryUserRepository,
        token_store: TokenStore,
        notifier: RecordingNotifier,
    ) -> None:
        """Identity store failure compensates by deleting the created user."""
        repository = AsyncMock()
        repository.create_identity.side_effect = StoreFailure("identity store down")
        registry = LoginIdentityRegistry(repository=repository, bcrypt_cost=TEST_BCRYPT_COST)
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        with pytest.raises(IdentityAttachFailed) as exc_info:
            await saga.register(new_user())

        assert isinstance(exc_info.value.cause, StoreFailure)
        assert await users.fetch_user(exc_info.value.user_id) is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_user_already_gone_still_reports_step_error(
        self, token_store: TokenStore, notifier: RecordingNotifier
    ) -> None:
        """A rollback that finds nothing to delete is not a compensation failure."""
        users = InMemoryUserRepository()
        repository = AsyncMock()

        async def vanish(identity):
            users.users.clear()
            raise StoreFailure("identity store down")

        repository.create_identity.side_effect = vanish
        registry = LoginIdentityRegistry(repository=repository, bcrypt_cost=TEST_BCRYPT_COST)
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        with pytest.raises(IdentityAttachFailed):
            await saga.register(new_user())


class TestTokenIssueFailure:
    """Tests for step 3 failures and compensation."""

    @pytest.mark.asyncio
    async def test_token_store_down_deletes_user_and_identity(
        self,
        users: InMemoryUserRepository,
        identities: InMemoryIdentityRepository,
        registry: LoginIdentityRegistry,
        notifier: RecordingNotifier,
    ) -> None:
        backend = AsyncMock()
        backend.set_with_ttl.side_effect = StoreUnavailable()
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=TokenStore(store=backend), notifier=notifier
        )

        with pytest.raises(TokenIssueFailed) as exc_info:
            await saga.register(new_user())

        error = exc_info.value
        assert error.step is SagaState.IDENTITY_ATTACHED
        assert isinstance(error.cause, StoreUnavailable)
        assert await users.fetch_user(error.user_id) is None
        assert await identities.fetch_identity(error.user_id, LoginIdentityType.EMAIL) is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_address_reusable_after_rollback(
        self,
        users: InMemoryUserRepository,
        registry: LoginIdentityRegistry,
        token_store: TokenStore,
        notifier: RecordingNotifier,
    ) -> None:
        """A rolled back registration does not reserve the email address."""
        backend = AsyncMock()
        backend.set_with_ttl.side_effect = StoreUnavailable()
        failing = RegistrationSaga(
            users=users, registry=registry, tokens=TokenStore(store=backend), notifier=notifier
        )
        with pytest.raises(TokenIssueFailed):
            await failing.register(new_user())

        working = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )
        user = await working.register(new_user())
        assert await users.fetch_user(user.id) == user


class TestNotificationFailure:
    """Tests for step 4 failures (not compensated)."""

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_user(
        self,
        users: InMemoryUserRepository,
        identities: InMemoryIdentityRepository,
        registry: LoginIdentityRegistry,
        token_store: TokenStore,
    ) -> None:
        notifier = AsyncMock()
        notifier.send.side_effect = NotificationError("smtp down")
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        with pytest.raises(NotificationFailed) as exc_info:
            await saga.register(new_user())

        error = exc_info.value
        assert error.step is SagaState.TOKEN_ISSUED
        assert await users.fetch_user(error.user.id) == error.user
        identity = await identities.fetch_identity(error.user.id, LoginIdentityType.EMAIL)
        assert identity is not None
        assert identity.verified is False

    @pytest.mark.asyncio
    async def test_token_stays_valid_after_notification_failure(
        self,
        users: InMemoryUserRepository,
        registry: LoginIdentityRegistry,
        token_store: TokenStore,
    ) -> None:
        notifier = AsyncMock()
        notifier.send.side_effect = NotificationError("smtp down")
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        with pytest.raises(NotificationFailed) as exc_info:
            await saga.register(new_user())

        token = notifier.send.call_args[0][3]
        claim = await token_store.redeem(token)
        assert claim.subject_id == exc_info.value.user.id


class TestCompensationFailure:
    """Tests for rollback that cannot complete."""

    @pytest.mark.asyncio
    async def test_failed_rollback_raises_compensation_failed(
        self, token_store: TokenStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        users = UndeletableUserRepository()
        repository = AsyncMock()
        repository.create_identity.side_effect = StoreFailure("identity store down")
        registry = LoginIdentityRegistry(repository=repository, bcrypt_cost=TEST_BCRYPT_COST)
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=RecordingNotifier()
        )

        with caplog.at_level(logging.ERROR):
            with pytest.raises(CompensationFailed) as exc_info:
                await saga.register(new_user())

        error = exc_info.value
        assert isinstance(error.cause, IdentityAttachFailed)
        assert len(error.compensation_errors) == 1
        assert isinstance(error.compensation_errors[0], StoreFailure)
        assert error.user_id in users.users
        assert "database went away" in error.description
        assert any(record.levelno == logging.CRITICAL for record in caplog.records)


class TestCancellation:
    """Tests for completion when the caller goes away."""

    @pytest.mark.asyncio
    async def test_saga_completes_after_caller_cancelled(
        self,
        users: InMemoryUserRepository,
        registry: LoginIdentityRegistry,
        token_store: TokenStore,
    ) -> None:
        notifier = BlockingNotifier()
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        task = asyncio.create_task(saga.register(new_user()))
        await asyncio.wait_for(notifier.entered.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        notifier.release.set()
        for _ in range(100):
            if notifier.sent:
                break
            await asyncio.sleep(0.01)

        assert len(notifier.sent) == 1
        assert len(users.users) == 1

    @pytest.mark.asyncio
    async def test_failure_after_caller_cancelled_is_not_left_unretrieved(
        self,
        users: InMemoryUserRepository,
        registry: LoginIdentityRegistry,
        token_store: TokenStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A saga that fails with nobody awaiting it does not trip asyncio's warning."""
        notifier = FailingBlockingNotifier()
        saga = RegistrationSaga(
            users=users, registry=registry, tokens=token_store, notifier=notifier
        )

        with caplog.at_level(logging.ERROR, logger="asyncio"):
            task = asyncio.create_task(saga.register(new_user()))
            await asyncio.wait_for(notifier.entered.wait(), timeout=5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            del task

            notifier.release.set()
            for _ in range(100):
                if notifier.failed:
                    break
                await asyncio.sleep(0.01)
            for _ in range(5):
                await asyncio.sleep(0)
            gc.collect()

        assert notifier.failed
        assert "never retrieved" not in caplog.text
