"""Redis-backed script executors.

Scripts are registered once per source text with ``register_script``;
redis-py then calls EVALSHA and falls back to EVAL when the server has
flushed its script cache.
"""

import threading
from typing import Any, Dict, List, Optional

import redis
import redis.asyncio as aioredis
from redis.commands.core import AsyncScript, Script

from ratelimiter.core.config import settings
from ratelimiter.core.logging import get_logger
from ratelimiter.executors.base import AsyncScriptExecutor, ScriptExecutor

logger = get_logger(__name__)


def create_redis_client(redis_url: Optional[str] = None) -> redis.Redis:
    """Create a sync Redis client from settings.

    Socket timeouts bound every script call; a timed out call surfaces as
    ``redis.TimeoutError`` and the limiter wraps it in ``ExecutionError``.
    """
    return redis.Redis.from_url(
        redis_url or settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
    )


def create_async_redis_client(redis_url: Optional[str] = None) -> aioredis.Redis:
    """Create an asyncio Redis client from settings."""
    return aioredis.from_url(
        redis_url or settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
    )


class RedisScriptExecutor(ScriptExecutor):
    """Runs Lua scripts on a sync ``redis.Redis`` client."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        redis_url: Optional[str] = None,
    ) -> None:
        """Initialize the executor.

        Args:
            redis_client: Optional Redis client instance
            redis_url: Redis connection URL, used when no client is given
        """
        self._redis = redis_client if redis_client is not None else create_redis_client(redis_url)
        self._scripts: Dict[str, Script] = {}
        self._lock = threading.Lock()

    def _get_script(self, script: str) -> Script:
        registered = self._scripts.get(script)
        if registered is None:
            with self._lock:
                registered = self._scripts.get(script)
                if registered is None:
                    registered = self._redis.register_script(script)
                    self._scripts[script] = registered
                    logger.debug("Registered Lua script with Redis client")
        return registered

    def execute(self, script: str, key: str, *args: str) -> List[Any]:
        return self._get_script(script)(keys=[key], args=list(args))

    def close(self) -> None:
        """Close the underlying client."""
        self._redis.close()


class AsyncRedisScriptExecutor(AsyncScriptExecutor):
    """Runs Lua scripts on a ``redis.asyncio.Redis`` client."""

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        redis_url: Optional[str] = None,
    ) -> None:
        self._redis = redis_client if redis_client is not None else create_async_redis_client(redis_url)
        self._scripts: Dict[str, AsyncScript] = {}

    def _get_script(self, script: str) -> AsyncScript:
        # No await between lookup and insert, so no lock is needed
        registered = self._scripts.get(script)
        if registered is None:
            registered = self._redis.register_script(script)
            self._scripts[script] = registered
        return registered

    async def execute(self, script: str, key: str, *args: str) -> List[Any]:
        return await self._get_script(script)(keys=[key], args=list(args))

    async def close(self) -> None:
        """Close the underlying client."""
        # aclose() is the redis-py 5.0+ spelling
        await self._redis.aclose()
