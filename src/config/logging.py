"""Logging configuration for the application."""

import logging
import sys

import structlog

from src.config.settings import Settings


def build_json_formatter() -> structlog.stdlib.ProcessorFormatter:
    """One JSON object per record, for log shipping outside development."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def setup_logging(settings: Settings) -> None:
    """
    Configure application logging.

    DEBUG in development, INFO elsewhere, unless ``log_level`` is set.
    Outside development every record is rendered as a JSON object.
    Domain and adapter modules only use ``logging.getLogger(__name__)``;
    this is the single place handlers are installed.

    Args:
        settings: Application settings
    """
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    elif settings.is_dev:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    if not settings.is_dev:
        json_formatter = build_json_formatter()
        for handler in logging.getLogger().handlers:
            handler.setFormatter(json_formatter)

    # Third-party loggers stay at WARNING
    for name in ("psycopg", "psycopg.pool", "redis", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(level)

    logging.getLogger(__name__).info(
        "Logging configured: environment=%s, level=%s",
        settings.environment,
        logging.getLevelName(level),
    )
