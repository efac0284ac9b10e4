"""
Logging Configuration for the Sales Analytics Engine

structlog on top of stdlib logging. Every record carries the application
name and environment; money amounts (Decimal) are rendered as plain
strings so JSON output stays machine-readable.
"""

import logging
import sys
from decimal import Decimal
from typing import IO, Any, Dict, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level

from sales_analytics.config.settings import get_settings


def _add_app_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    settings = get_settings()
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("env", settings.app_env)
    return event_dict


def _render_decimals(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """
    Configure structured logging for the engine.

    Args:
        log_level: Override MonitoringSettings.log_level
        log_format: Override MonitoringSettings.log_format ("json" or "text")
        stream: Output stream, stdout by default
    """
    monitoring = get_settings().monitoring
    level = (log_level or monitoring.log_level).upper()
    fmt = (log_format or monitoring.log_format).lower()
    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        _add_app_context,
        _render_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer(colors=False)
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    structlog.get_logger(__name__).debug("Logging configured", level=level, format=fmt)


def get_logger(name: str):
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)
