"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory repositories, key-value store and notifier
- Fully wired domain services over those fakes
- A migrated PostgreSQL pool for integration and adversarial tests,
  skipped when the database cannot be reached
"""

from collections.abc import AsyncGenerator

import psycopg
import pytest
import pytest_asyncio
from psycopg_pool import AsyncConnectionPool

from src.adapters.kv.memory import InMemoryKeyValueStore
from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings
from src.domain.identities import LoginIdentityRegistry
from src.domain.registration import RegistrationSaga
from src.domain.tokens import TokenStore
from src.domain.verification import VerificationHandler
from tests.fakes import (
    TEST_BCRYPT_COST,
    InMemoryIdentityRepository,
    InMemoryUserRepository,
    RecordingNotifier,
    linked_repositories,
)


@pytest.fixture
def repositories() -> tuple[InMemoryUserRepository, InMemoryIdentityRepository]:
    return linked_repositories()


@pytest.fixture
def users(repositories) -> InMemoryUserRepository:
    return repositories[0]


@pytest.fixture
def identities(repositories) -> InMemoryIdentityRepository:
    return repositories[1]


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def registry(identities: InMemoryIdentityRepository) -> LoginIdentityRegistry:
    return LoginIdentityRegistry(repository=identities, bcrypt_cost=TEST_BCRYPT_COST)


@pytest.fixture
def token_store(kv_store: InMemoryKeyValueStore) -> TokenStore:
    return TokenStore(store=kv_store)


@pytest.fixture
def saga(
    users: InMemoryUserRepository,
    registry: LoginIdentityRegistry,
    token_store: TokenStore,
    notifier: RecordingNotifier,
) -> RegistrationSaga:
    return RegistrationSaga(users=users, registry=registry, tokens=token_store, notifier=notifier)


@pytest.fixture
def handler(token_store: TokenStore, registry: LoginIdentityRegistry) -> VerificationHandler:
    return VerificationHandler(tokens=token_store, registry=registry)


@pytest.fixture(scope="session")
def database_url() -> str:
    """DATABASE_URL, skipping the test when PostgreSQL is unreachable."""
    url = get_settings().database_url
    try:
        with psycopg.connect(url, connect_timeout=2):
            pass
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not available: {e}")
    return url


@pytest_asyncio.fixture
async def pool(database_url: str) -> AsyncGenerator[AsyncConnectionPool, None]:
    """Create a migrated, empty database pool for each test."""
    pool = AsyncConnectionPool(conninfo=database_url, min_size=1, max_size=10, open=False)
    await pool.open()
    await run_migrations(pool)
    async with pool.connection() as conn:
        await conn.execute("TRUNCATE users CASCADE")
        await conn.commit()
    yield pool
    await pool.close()
