"""Structured logging configuration using structlog.

Console output is pretty-printed or JSON depending on APP_LOG_FORMAT. When
APP_LOG_DIR is set, a rotating JSON-lines file handler is added as well.
"""

import logging
import logging.handlers
import os
import pathlib
import sys
from typing import Any

import structlog


def _add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add the short component name ("admin_agent.catalog.index" -> "index").

    Args:
        logger: The logger instance.
        method_name: The log method name (info, error, etc.).
        event_dict: The event dictionary.

    Returns:
        Event dictionary with component added.
    """
    logger_name = event_dict.get("logger") or getattr(logger, "name", "") or "unknown"
    event_dict["component"] = logger_name.rsplit(".", 1)[-1]
    return event_dict


_SHARED_PROCESSORS: list[Any] = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    _add_component,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _configure_file_handler(log_dir: pathlib.Path) -> logging.handlers.RotatingFileHandler:
    """Configure rotating file handler for JSON logs."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=str(log_dir / "current.jsonl"),
        maxBytes=50 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def _configure_console_handler(log_format: str) -> logging.StreamHandler[Any]:
    """Configure the stderr handler with a console or JSON renderer."""
    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def configure_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog for structured logging.

    Call once at application startup; get_logger() calls it lazily otherwise.

    Args:
        log_level: Override for APP_LOG_LEVEL.
        log_format: Override for APP_LOG_FORMAT ("json" or "console").
    """
    # Read from the environment: settings may not exist yet.
    from admin_agent.config.bootstrap import (  # noqa: PLC0415
        get_bootstrap_log_format,
        get_bootstrap_log_level,
    )

    level_name = (log_level or get_bootstrap_log_level()).upper()
    fmt = log_format or get_bootstrap_log_format()
    configured_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(configured_level)

    for noisy in ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.addHandler(_configure_console_handler(fmt))

    log_dir = os.getenv("APP_LOG_DIR")
    if log_dir:
        file_handler = _configure_file_handler(pathlib.Path(log_dir))
        file_handler.setLevel(logging.INFO)
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:  # Returns structlog.stdlib.BoundLogger
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module).

    Returns:
        Configured structlog logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("run_suspended", run_id="123", trace_id="abc")
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(name)
