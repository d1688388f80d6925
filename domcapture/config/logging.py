"""
Logging Configuration
====================

Structured logging for the capture pipeline. Uses structlog over the
standard library, with JSON output in production and a console renderer
elsewhere. Events emitted while a capture runs carry its ``capture_id``.
"""

import logging
import logging.config
import sys
from typing import Any, ContextManager, Dict, Mapping, TYPE_CHECKING
import structlog
from structlog.types import Processor

from .settings import get_settings

if TYPE_CHECKING:
    from .settings import Settings

# Libraries whose chatter is capped at WARNING
THIRD_PARTY_LOGGERS = ("aiohttp", "playwright", "PIL")


def setup_logging() -> None:
    """Configure structlog and the standard library handlers."""
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "production":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(get_logging_config(settings))


def _quiet(level: str = "WARNING") -> Mapping[str, Any]:
    return {"level": level, "handlers": ["console"], "propagate": False}


def get_logging_config(settings: "Settings") -> Dict[str, Any]:
    """Build the ``dictConfig`` for the console handler and package loggers."""
    loggers: Dict[str, Any] = {name: _quiet() for name in THIRD_PARTY_LOGGERS}
    loggers["domcapture"] = _quiet(settings.log_level)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.log_level,
                "formatter": "plain",
                "stream": sys.stderr,
            },
        },
        "loggers": loggers,
    }


def capture_context(capture_id: str, **fields: Any) -> ContextManager[Any]:
    """Bind ``capture_id`` (and ``fields``) to every event logged inside the block."""
    return structlog.contextvars.bound_contextvars(capture_id=capture_id, **fields)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


# Initialize logging on import
setup_logging()
