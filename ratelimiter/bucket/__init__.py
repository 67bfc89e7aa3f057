"""Token bucket models and the atomic refill-and-consume procedure.

The procedure runs inside the shared store as a Lua script; a Python
rendition with identical semantics backs the in-memory executor.
"""

from .algorithm import bucket_ttl_millis, refill_and_consume
from .models import (
    MICROS_PER_SECOND,
    BucketState,
    Decision,
    FailurePolicy,
    RateLimiterConfig,
)
from .redis_lua import TOKEN_BUCKET_SCRIPT

__all__ = [
    "MICROS_PER_SECOND",
    "BucketState",
    "Decision",
    "FailurePolicy",
    "RateLimiterConfig",
    "TOKEN_BUCKET_SCRIPT",
    "bucket_ttl_millis",
    "refill_and_consume",
]
