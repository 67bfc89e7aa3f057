"""Executors that run the bucket script in a shared store.

Provides a pluggable executor system with Redis and in-memory implementations.
"""

from typing import Optional

from ratelimiter.executors.base import AsyncScriptExecutor, ScriptExecutor
from ratelimiter.executors.in_memory import AsyncInMemoryScriptExecutor, InMemoryScriptExecutor
from ratelimiter.executors.redis_executor import (
    AsyncRedisScriptExecutor,
    RedisScriptExecutor,
    create_async_redis_client,
    create_redis_client,
)

_executor_instance: Optional[ScriptExecutor] = None


def get_script_executor(
    backend: Optional[str] = None,
    redis_url: Optional[str] = None,
    force_new: bool = False,
) -> ScriptExecutor:
    """Get or create the global script executor.

    Args:
        backend: 'redis' or 'memory'; None reads settings.rate_limit_backend
        redis_url: Redis connection URL. If not provided, uses settings.redis_url.
        force_new: If True, create a new instance even if one exists.

    Returns:
        A ScriptExecutor instance (RedisScriptExecutor or InMemoryScriptExecutor).

    Example:
        >>> from ratelimiter.executors import get_script_executor
        >>> executor = get_script_executor()
        >>> limiter = RedisRateLimiter(executor, "api", permits_per_second=10)
    """
    global _executor_instance

    if _executor_instance is not None and not force_new:
        return _executor_instance

    from ratelimiter.core.config import settings

    backend = (backend or settings.rate_limit_backend).lower()
    if backend == "memory":
        _executor_instance = InMemoryScriptExecutor()
    elif backend == "redis":
        _executor_instance = RedisScriptExecutor(redis_url=redis_url)
    else:
        raise ValueError(f"Unknown rate limit backend: {backend!r}")
    return _executor_instance


def reset_script_executor() -> None:
    """Reset the global executor instance.

    This is primarily useful for testing.
    """
    global _executor_instance
    _executor_instance = None


__all__ = [
    "AsyncInMemoryScriptExecutor",
    "AsyncRedisScriptExecutor",
    "AsyncScriptExecutor",
    "InMemoryScriptExecutor",
    "RedisScriptExecutor",
    "ScriptExecutor",
    "create_async_redis_client",
    "create_redis_client",
    "get_script_executor",
    "reset_script_executor",
]
