"""Core utilities for the rate limiter."""

from ratelimiter.core.config import Settings, settings
from ratelimiter.core.logging import get_log_context, get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_log_context",
    "get_logger",
    "setup_logging",
]
