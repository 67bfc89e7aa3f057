"""Structured logging configuration for the rate limiter.

This module provides a structured logging setup using Python's standard
logging module with JSON formatting for production environments.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from ratelimiter.core.config import settings

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRIBUTES = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "asctime", "timestamp", "logger", "level", "source", "taskName",
))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for consumption by log aggregation
    systems like ELK Stack or Grafana Loki.
    """

    # Contextual fields describing a limiter decision
    CONTEXT_FIELDS = [
        "limiter_key",              # Bucket key in the shared store
        "permits",                  # Permits requested by the call
        "allowed",                  # Decision returned to the caller
        "next_free_ticket_micros",  # Earliest time a retry may succeed
        "failure_policy",           # Policy applied on store failure
    ]

    def __init__(self, datefmt: Optional[str] = None):
        """Initialize JSON formatter.

        Args:
            datefmt: Date format string (ISO8601 by default)
        """
        super().__init__(datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_data: Dict[str, Any] = {}

        record.message = record.getMessage()

        log_data["timestamp"] = datetime.now().astimezone().isoformat()
        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.message

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        for field in self.CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key in self.CONTEXT_FIELDS:
                continue
            log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds contextual fields to log records.

    Adds default values for limiter_key, permits and the other decision
    fields if not already present in the log record.
    """

    CONTEXT_DEFAULTS = {
        "limiter_key": None,
        "permits": None,
        "allowed": None,
        "next_free_ticket_micros": None,
        "failure_policy": None,
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record if not present.

        Args:
            record: Log record to enrich

        Returns:
            True to allow the record through
        """
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    log_format = getattr(settings, "log_format", "text").lower()
    log_level = getattr(settings, "log_level", "INFO").upper()

    formatters = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - limiter_key=%(limiter_key)s - permits=%(permits)s - allowed=%(allowed)s"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "ratelimiter.core.logging.JSONFormatter",
        }
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": default_formatter,
            "stream": sys.stdout,
            "filters": ["context"],
        },
        "error_console": {
            "class": "logging.StreamHandler",
            "level": "ERROR",
            "formatter": default_formatter,
            "stream": sys.stderr,
            "filters": ["context"],
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {
                "()": "ratelimiter.core.logging.ContextFilter",
            },
        },
        "handlers": handlers,
        "loggers": {
            "ratelimiter": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging() -> None:
    """Configure logging for processes embedding the limiter."""
    logging.config.dictConfig(get_logging_config())

    # redis-py logs every reconnect at DEBUG
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str = "ratelimiter") -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, defaults to "ratelimiter"

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def get_log_context(
    limiter_key: Optional[str] = None,
    permits: Optional[int] = None,
    allowed: Optional[bool] = None,
    next_free_ticket_micros: Optional[int] = None,
    failure_policy: Optional[str] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with extra parameter.

    Args:
        limiter_key: Bucket key in the shared store
        permits: Permits requested by the call
        allowed: Decision returned to the caller
        next_free_ticket_micros: Earliest time a retry may succeed
        failure_policy: Policy applied when the store failed
        **extra: Additional custom fields

    Returns:
        Dictionary suitable for passing as extra= parameter to logging calls

    Example:
        >>> logger.debug(
        ...     "Bucket decision",
        ...     extra=get_log_context(limiter_key="api", permits=1, allowed=True)
        ... )
    """
    context = {
        "limiter_key": limiter_key,
        "permits": permits,
        "allowed": allowed,
        "next_free_ticket_micros": next_free_ticket_micros,
        "failure_policy": failure_policy,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
