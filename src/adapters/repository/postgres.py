"""
PostgreSQL repository adapters - Implement UserRepository and IdentityRepository.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 (async) with raw SQL.

Consistency Design:
------------------
1. **Uniqueness**: one login identity per (user, kind) is the primary key of
   each identity table, and each email address may belong to one user. Both
   are enforced by the database; ``INSERT ... ON CONFLICT DO NOTHING`` turns
   a conflict into ``False`` rather than an exception, so concurrent
   registrations for the same address are disambiguated without locking.

2. **Cascade**: identity rows reference ``users(id) ON DELETE CASCADE``.
   Deleting a user during saga rollback removes its identities too.

3. **Idempotent verification**: the verified flag is only ever set, and
   ``updated_at`` only moves on the first transition.

All psycopg errors (including pool checkout timeouts) are raised to the
domain as StoreFailure.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import assert_never
from uuid import UUID

import psycopg
from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from src.domain.exceptions import StoreFailure
from src.domain.models import (
    LoginIdentityType,
    StoredEmailPassword,
    StoredLoginIdentity,
    User,
)

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate psycopg failures into the domain's StoreFailure."""
    try:
        yield
    except psycopg.Error as e:
        logger.error("Database error while trying to %s: %s", action, e)
        raise StoreFailure(f"Database error while trying to {action}", cause=e) from e


def _identity_table(kind: LoginIdentityType) -> str:
    match kind:
        case LoginIdentityType.EMAIL:
            return "email_login_identities"
        case _:
            assert_never(kind)


def _row_to_user(row: tuple) -> User:
    return User(id=row[0], username=row[1], created_at=row[2], updated_at=row[3])


class PostgresUserRepository:
    """
    Implements UserRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 AsyncConnectionPool for database connections
        """
        self._pool = pool

    async def create_user(self, username: str) -> User:
        query = """
            INSERT INTO users (username)
            VALUES (%s)
            RETURNING id, username, created_at, updated_at
        """

        with _store_errors("create user"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, (username,))
                row = await cursor.fetchone()
                await conn.commit()

        if row is None:
            raise StoreFailure("User insert returned no row")
        return _row_to_user(row)

    async def fetch_user(self, user_id: UUID) -> User | None:
        query = "SELECT id, username, created_at, updated_at FROM users WHERE id = %s"

        with _store_errors(f"fetch user '{user_id}'"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, (user_id,))
                row = await cursor.fetchone()

        return _row_to_user(row) if row is not None else None

    async def delete_user(self, user_id: UUID) -> bool:
        """Delete the user row; identity rows go with it via ON DELETE CASCADE."""
        with _store_errors(f"delete user '{user_id}'"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute("DELETE FROM users WHERE id = %s", (user_id,))
                await conn.commit()
                return cursor.rowcount == 1

    async def list_users(self) -> list[User]:
        query = "SELECT id, username, created_at, updated_at FROM users ORDER BY created_at, id"

        with _store_errors("list users"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query)
                rows = await cursor.fetchall()

        return [_row_to_user(row) for row in rows]


class PostgresIdentityRepository:
    """
    Implements IdentityRepository protocol via psycopg3.

    Each login identity kind has its own table; dispatch is exhaustive over
    LoginIdentityType.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def create_identity(self, identity: StoredLoginIdentity) -> bool:
        """
        Insert a login identity.

        Returns:
            True if inserted, False if the user already has an identity of
            this kind or the address belongs to another user
        """
        match identity:
            case StoredEmailPassword():
                query = """
                    INSERT INTO email_login_identities (user_id, email, password_hash, salt)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT DO NOTHING
                """
                params = (identity.user_id, identity.email, identity.password_hash, identity.salt)
            case _:
                assert_never(identity)

        with _store_errors(f"create {identity.kind.value} identity"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.rowcount == 1

    async def fetch_identity(
        self, user_id: UUID, kind: LoginIdentityType
    ) -> StoredLoginIdentity | None:
        match kind:
            case LoginIdentityType.EMAIL:
                query = """
                    SELECT user_id, email, password_hash, salt, verified, created_at, updated_at
                    FROM email_login_identities
                    WHERE user_id = %s
                """
            case _:
                assert_never(kind)

        with _store_errors(f"fetch {kind.value} identity"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, (user_id,))
                row = await cursor.fetchone()

        if row is None:
            return None
        return StoredEmailPassword(
            user_id=row[0],
            email=row[1],
            password_hash=row[2],
            salt=row[3],
            verified=row[4],
            created_at=row[5],
            updated_at=row[6],
        )

    async def update_identity_verified(self, user_id: UUID, kind: LoginIdentityType) -> bool:
        """
        Mark the identity verified.

        ``updated_at`` only changes on the first transition, so repeating the
        call leaves the row exactly as it was.
        """
        query = sql.SQL(
            """
            UPDATE {table}
            SET verified = TRUE,
                updated_at = CASE WHEN verified THEN updated_at ELSE NOW() END
            WHERE user_id = %s
            """
        ).format(table=sql.Identifier(_identity_table(kind)))

        with _store_errors(f"verify {kind.value} identity"):
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, (user_id,))
                await conn.commit()
                return cursor.rowcount == 1


async def ping_database(pool: AsyncConnectionPool) -> None:
    """
    Check that a pooled connection can run a trivial query.

    Raises:
        StoreFailure: database unreachable or pool exhausted
    """
    with _store_errors("ping database"):
        async with pool.connection() as conn:
            await conn.execute("SELECT 1")


async def run_migrations(pool: AsyncConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 AsyncConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            async with pool.connection() as conn:
                await conn.execute(sql_content)
                await conn.commit()

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
