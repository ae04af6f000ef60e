"""
ORACLE TRADER — Structured Logging Utility
structlog for the application, with the stdlib loggers of uvicorn and
aiohttp routed to the same stream at the same level.
"""
import structlog
import logging
import sys
from typing import Optional

from oracle_trader.config.settings import AppSettings, get_settings

NOISY_LOGGERS = ("aiohttp.access", "uvicorn.access")


def setup_logging(settings: Optional[AppSettings] = None) -> None:
    """Configure structlog once per process; JSON lines unless in debug."""
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def bind_context(**values) -> None:
    """Attach key/values to every log line emitted from this context."""
    structlog.contextvars.bind_contextvars(**values)


def get_logger(name: str = None) -> structlog.BoundLogger:
    return structlog.get_logger(name or "oracle_trader")
