"""Token bucket data models.

This module contains dataclasses for limiter configuration, the bucket
state persisted by the shared store, and the decision returned per call.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from ratelimiter.exceptions import ConfigurationError

MICROS_PER_SECOND = 1_000_000


@dataclass(frozen=True)
class RateLimiterConfig:
    """Immutable per-key limiter configuration.

    Attributes:
        key: Bucket identifier, one bucket per key
        permits_per_second: Refill rate
        max_permits: Bucket capacity, defaults to one second of permits
    """
    key: str
    permits_per_second: float
    max_permits: Optional[float] = None

    def __post_init__(self) -> None:
        if self.key is None or not str(self.key).strip():
            raise ConfigurationError("key should be not empty")
        permits_per_second = _to_positive_float(self.permits_per_second)
        # A subnormal rate would give an infinite refill interval
        if permits_per_second is None or not math.isfinite(MICROS_PER_SECOND / permits_per_second):
            raise ConfigurationError("permits_per_second should be a finite number more than 0")
        if self.max_permits is None:
            max_permits = permits_per_second
        else:
            max_permits = _to_positive_float(self.max_permits)
            if max_permits is None:
                raise ConfigurationError("max_permits should be a finite number more than 0")
        object.__setattr__(self, "permits_per_second", permits_per_second)
        object.__setattr__(self, "max_permits", max_permits)

    @property
    def stable_interval_micros(self) -> float:
        """Microseconds needed to regenerate one permit."""
        return MICROS_PER_SECOND / self.permits_per_second


def _to_positive_float(value: Any) -> Optional[float]:
    """Return ``value`` as a finite positive float, or None if it is not one."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        result = float(value)
    except OverflowError:
        return None
    if not math.isfinite(result) or result <= 0:
        return None
    return result


@dataclass
class BucketState:
    """Bucket state held by the shared store for one key.

    Attributes:
        stored_permits: Permits currently in the bucket, within [0, max_permits]
        last_refill_micros: Timestamp of the last refill, never moves backwards
    """
    stored_permits: float
    last_refill_micros: int

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "stored_permits": self.stored_permits,
            "last_refill_micros": self.last_refill_micros,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BucketState":
        """Create from dictionary."""
        return cls(
            stored_permits=float(data["stored_permits"]),
            last_refill_micros=int(data["last_refill_micros"]),
        )


@dataclass(frozen=True)
class Decision:
    """Outcome of one run of the bucket script.

    ``next_free_ticket_micros`` is computed for the permit count of the call
    that produced it; it equals the call time when the call was admitted.
    """
    allowed: bool
    next_free_ticket_micros: int
    stored_permits: int = field(default=0)

    @classmethod
    def from_script_result(cls, result: Sequence[Any]) -> "Decision":
        """Parse the ordered ``(allowed_flag, next_free_ticket_micros, stored_permits)`` reply.

        Raises:
            ValueError: If the reply does not have the expected shape
        """
        if isinstance(result, (str, bytes)) or len(result) != 3:
            raise ValueError(f"expected 3 values from bucket script, got {result!r}")
        allowed_flag, next_free, stored = (_to_int(v) for v in result)
        return cls(
            allowed=allowed_flag > 0,
            next_free_ticket_micros=next_free,
            stored_permits=stored,
        )


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"unexpected boolean in bucket script result: {value!r}")
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"unexpected fractional value in bucket script result: {value!r}")
        return int(value)
    return int(value)


class FailurePolicy(str, enum.Enum):
    """What a limiter returns when the shared store call fails."""
    RAISE = "raise"  # propagate ExecutionError
    ALLOW = "allow"  # fail open
    DENY = "deny"    # fail closed
