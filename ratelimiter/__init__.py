"""Distributed token bucket rate limiter backed by a shared atomic store.

Every process using the same key draws from one bucket held in Redis; the
refill-and-consume step runs as a Lua script so it is atomic across hosts.
"""

from ratelimiter.bucket import (
    TOKEN_BUCKET_SCRIPT,
    BucketState,
    Decision,
    FailurePolicy,
    RateLimiterConfig,
)
from ratelimiter.exceptions import (
    ConfigurationError,
    ExecutionError,
    RateLimiterError,
    ValidationError,
)
from ratelimiter.executors import (
    AsyncInMemoryScriptExecutor,
    AsyncRedisScriptExecutor,
    AsyncScriptExecutor,
    InMemoryScriptExecutor,
    RedisScriptExecutor,
    ScriptExecutor,
    get_script_executor,
    reset_script_executor,
)
from ratelimiter.service import AsyncRedisRateLimiter, RedisRateLimiter, create_rate_limiter

__all__ = [
    "TOKEN_BUCKET_SCRIPT",
    "AsyncInMemoryScriptExecutor",
    "AsyncRedisRateLimiter",
    "AsyncRedisScriptExecutor",
    "AsyncScriptExecutor",
    "BucketState",
    "ConfigurationError",
    "Decision",
    "ExecutionError",
    "FailurePolicy",
    "InMemoryScriptExecutor",
    "RateLimiterConfig",
    "RateLimiterError",
    "RedisRateLimiter",
    "RedisScriptExecutor",
    "ScriptExecutor",
    "ValidationError",
    "create_rate_limiter",
    "get_script_executor",
    "reset_script_executor",
]
