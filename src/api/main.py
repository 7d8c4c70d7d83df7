"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import AsyncConnectionPool

from src.adapters.repository.postgres import ping_database, run_migrations
from src.api.dependencies import build_kv_store, build_notifier
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.logging import setup_logging
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Manifold Accounts API v1 - Register users and verify login identities",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Configures logging
    - Creates database connection pool and runs migrations
    - Creates key-value store and notifier
    - Closes connections on shutdown
    """
    settings = get_settings()
    setup_logging(settings)

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing and timeouts
    statement_timeout_ms = int(settings.database_timeout_seconds * 1000)
    pool = AsyncConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.database_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={statement_timeout_ms}"},
        open=False,
    )
    await pool.open()

    # Run migrations
    logger.info("Running database migrations...")
    await run_migrations(pool)

    # Store adapters in app state for dependency injection
    app.state.pool = pool
    app.state.kv_store = build_kv_store(settings)
    app.state.notifier = build_notifier(settings)
    logger.info(
        "Using %s key-value store and %s notifier", settings.kv_backend, settings.notifier
    )

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await app.state.kv_store.close()
    await pool.close()
    logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Build the FastAPI application with routes and error handlers."""
    application = FastAPI(
        title="manifold-accounts",
        description="User registration saga and login identity verification API",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )

    # Include v1 API routes
    application.include_router(v1_router, prefix="/v1")
    register_exception_handlers(application)

    @application.get("/health")
    async def health_check(request: Request) -> dict[str, str]:
        """
        Health check endpoint with database and key-value store validation.

        Returns 200 OK if the application and both stores are healthy.
        Store failures are rendered by the domain error handlers.
        """
        await ping_database(request.app.state.pool)
        await request.app.state.kv_store.ping()

        return {"status": "healthy"}

    return application


app = create_app()
