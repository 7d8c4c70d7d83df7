"""
Shared fixtures for adversarial tests.

Provides a registration saga and verification handler backed by the real
PostgreSQL repositories, for race condition tests.
"""

import pytest
from psycopg_pool import AsyncConnectionPool

from src.adapters.kv.memory import InMemoryKeyValueStore
from src.adapters.repository.postgres import PostgresIdentityRepository, PostgresUserRepository
from src.domain.identities import LoginIdentityRegistry
from src.domain.registration import RegistrationSaga
from src.domain.tokens import TokenStore
from src.domain.verification import VerificationHandler
from tests.fakes import TEST_BCRYPT_COST, RecordingNotifier


@pytest.fixture
def pg_registry(pool: AsyncConnectionPool) -> LoginIdentityRegistry:
    return LoginIdentityRegistry(
        repository=PostgresIdentityRepository(pool), bcrypt_cost=TEST_BCRYPT_COST
    )


@pytest.fixture
def pg_token_store() -> TokenStore:
    return TokenStore(store=InMemoryKeyValueStore())


@pytest.fixture
def pg_saga(
    pool: AsyncConnectionPool,
    pg_registry: LoginIdentityRegistry,
    pg_token_store: TokenStore,
    notifier: RecordingNotifier,
) -> RegistrationSaga:
    """Registration saga over PostgreSQL repositories."""
    return RegistrationSaga(
        users=PostgresUserRepository(pool),
        registry=pg_registry,
        tokens=pg_token_store,
        notifier=notifier,
    )


@pytest.fixture
def pg_handler(
    pg_token_store: TokenStore, pg_registry: LoginIdentityRegistry
) -> VerificationHandler:
    return VerificationHandler(tokens=pg_token_store, registry=pg_registry)
