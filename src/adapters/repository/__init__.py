"""Repository adapters - Database implementations."""

from .postgres import (
    PostgresIdentityRepository,
    PostgresUserRepository,
    ping_database,
    run_migrations,
)

__all__ = [
    "PostgresIdentityRepository",
    "PostgresUserRepository",
    "ping_database",
    "run_migrations",
]
