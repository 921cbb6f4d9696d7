"""
Structured logging configuration.

structlog renders every event as JSON; records emitted through the standard
library (uvicorn, SQLAlchemy, the Stripe SDK) go through python-json-logger so
the whole stream stays machine readable.
"""
import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from storefront.config import get_settings

_configured = False


def add_app_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Add application context to log events.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary

    Returns:
        dict[str, Any]: Enhanced event dictionary
    """
    settings = get_settings()
    event_dict["app_name"] = settings.app_name
    event_dict["app_env"] = settings.app_env
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Safe to call more than once; only the first call has an effect.
    """
    global _configured
    if _configured:
        return

    settings = get_settings()

    renderer: Any = (
        structlog.dev.ConsoleRenderer()
        if settings.debug and not settings.is_production
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_app_context,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={
            "asctime": "@timestamp",
            "levelname": "level",
            "name": "logger",
        },
    )
    json_handler.setFormatter(formatter)
    root_logger.addHandler(json_handler)

    # Suppress noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    _configured = True

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
