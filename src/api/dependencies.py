"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes,
plus the builders the lifespan uses to create shared adapters.
"""

from fastapi import Request
from psycopg_pool import AsyncConnectionPool

from src.adapters.kv import InMemoryKeyValueStore, RedisKeyValueStore
from src.adapters.repository.postgres import PostgresIdentityRepository, PostgresUserRepository
from src.adapters.smtp.console import ConsoleNotifier
from src.adapters.smtp.mailer import SmtpNotifier
from src.adapters.smtp.templates import TemplateRenderer
from src.config.settings import Settings, get_settings
from src.domain.identities import LoginIdentityRegistry
from src.domain.ports import KeyValueStore, Notifier
from src.domain.registration import RegistrationSaga
from src.domain.tokens import TokenStore
from src.domain.verification import VerificationHandler


def build_kv_store(settings: Settings) -> InMemoryKeyValueStore | RedisKeyValueStore:
    """Create the key-value adapter selected by ``kv_backend``."""
    if settings.kv_backend == "memory":
        return InMemoryKeyValueStore()
    return RedisKeyValueStore.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        timeout_seconds=settings.kv_timeout_seconds,
    )


def build_notifier(settings: Settings) -> Notifier:
    """Create the notifier selected by ``notifier``."""
    renderer = TemplateRenderer(settings.public_base_url, settings.token_ttl_seconds)
    if settings.notifier == "console":
        return ConsoleNotifier(renderer)

    missing = [
        name
        for name in ("smtp_host", "smtp_user", "smtp_password", "smtp_from")
        if not getattr(settings, name)
    ]
    if missing:
        raise ValueError(f"SMTP notifier requires settings: {', '.join(missing)}")
    return SmtpNotifier(
        renderer,
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.smtp_from,
        timeout_seconds=settings.smtp_timeout_seconds,
    )


def get_pool(request: Request) -> AsyncConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_kv_store(request: Request) -> KeyValueStore:
    return request.app.state.kv_store


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_user_repository(request: Request) -> PostgresUserRepository:
    """Create user repository with connection pool from app state."""
    return PostgresUserRepository(get_pool(request))


def get_identity_registry(request: Request) -> LoginIdentityRegistry:
    """Create identity registry over the PostgreSQL identity repository."""
    settings = get_settings()
    repository = PostgresIdentityRepository(get_pool(request))
    return LoginIdentityRegistry(repository=repository, bcrypt_cost=settings.bcrypt_cost)


def get_token_store(request: Request) -> TokenStore:
    settings = get_settings()
    return TokenStore(store=get_kv_store(request), ttl_seconds=settings.token_ttl_seconds)


def get_registration_saga(request: Request) -> RegistrationSaga:
    """
    Create registration saga with injected dependencies.

    Wires together the repositories, token store and notifier.
    """
    return RegistrationSaga(
        users=get_user_repository(request),
        registry=get_identity_registry(request),
        tokens=get_token_store(request),
        notifier=get_notifier(request),
    )


def get_verification_handler(request: Request) -> VerificationHandler:
    """Create verification handler with injected dependencies."""
    return VerificationHandler(
        tokens=get_token_store(request),
        registry=get_identity_registry(request),
    )
