"""Distributed token bucket rate limiters.

Every process holding a limiter for the same key shares one bucket in the
store; the bucket script is the only writer. Each limiter also caches the
last decision it saw so that, while a denial is known to still hold, calls
are answered locally without a round trip.
"""

import asyncio
import threading
import time
from typing import Any, Callable, List, Optional, Sequence, Union

from ratelimiter.bucket import (
    TOKEN_BUCKET_SCRIPT,
    Decision,
    FailurePolicy,
    RateLimiterConfig,
)
from ratelimiter.core.config import settings
from ratelimiter.core.logging import get_log_context, get_logger
from ratelimiter.exceptions import ConfigurationError, ExecutionError, ValidationError
from ratelimiter.executors import (
    AsyncScriptExecutor,
    ScriptExecutor,
    get_script_executor,
)

logger = get_logger(__name__)

Clock = Callable[[], int]


def wall_clock_micros() -> int:
    """Wall clock in integer microseconds.

    Wall time rather than a monotonic clock: the timestamp is compared with
    timestamps written by other hosts.
    """
    return time.time_ns() // 1000


class _BaseRateLimiter:
    """State and helpers shared by the sync and asyncio limiters."""

    def __init__(
        self,
        key: str,
        permits_per_second: float,
        max_permits: Optional[float] = None,
        *,
        failure_policy: Union[FailurePolicy, str, None] = None,
        clock: Optional[Clock] = None,
        key_prefix: Optional[str] = None,
    ) -> None:
        self._config = RateLimiterConfig(
            key=key,
            permits_per_second=permits_per_second,
            max_permits=max_permits,
        )
        if failure_policy is None:
            failure_policy = settings.rate_limit_failure_policy
        try:
            self._failure_policy = FailurePolicy(failure_policy)
        except ValueError as e:
            raise ConfigurationError(f"unknown failure policy: {failure_policy!r}") from e
        self._clock = clock or wall_clock_micros
        prefix = settings.rate_limit_key_prefix if key_prefix is None else key_prefix.rstrip(":")
        self._store_key = f"{prefix}:{key}" if prefix else key
        # Swapped whole, never mutated; read without the lock
        self._decision: Optional[Decision] = None

    @property
    def config(self) -> RateLimiterConfig:
        return self._config

    @property
    def key(self) -> str:
        return self._config.key

    @property
    def store_key(self) -> str:
        """Key of the bucket in the shared store."""
        return self._store_key

    @property
    def stable_interval_micros(self) -> float:
        return self._config.stable_interval_micros

    @property
    def failure_policy(self) -> FailurePolicy:
        return self._failure_policy

    @property
    def last_decision(self) -> Optional[Decision]:
        """Last decision returned by the store, or None before the first call."""
        return self._decision

    @staticmethod
    def _validate_permits(permits: Any) -> None:
        if isinstance(permits, bool) or not isinstance(permits, int) or permits <= 0:
            raise ValidationError(permits)

    def _fails_fast(self, now_micros: int) -> bool:
        """True while the cached denial is known to still hold.

        The cached ticket time was computed for the permit count of the call
        that was denied, so a smaller request may be turned away here even
        though the store would admit it. Admissions are never cached as
        denials, and the store decides every call that gets past this check.
        """
        decision = self._decision
        return (
            decision is not None
            and not decision.allowed
            and now_micros <= decision.next_free_ticket_micros
        )

    def _script_args(self, now_micros: int, permits: int) -> List[str]:
        return [
            repr(self._config.stable_interval_micros),
            repr(self._config.max_permits),
            str(now_micros),
            str(permits),
        ]

    def _parse_result(self, result: Sequence[Any]) -> Decision:
        try:
            return Decision.from_script_result(result)
        except (TypeError, ValueError) as e:
            raise ExecutionError(self.key, "malformed bucket script result") from e

    def _record(self, decision: Decision, permits: int) -> bool:
        self._decision = decision
        logger.debug(
            f"Bucket decision for {self.key}",
            extra=get_log_context(
                limiter_key=self.key,
                permits=permits,
                allowed=decision.allowed,
                next_free_ticket_micros=decision.next_free_ticket_micros,
            ),
        )
        return decision.allowed

    def _handle_store_failure(self, error: ExecutionError, permits: int) -> bool:
        """Apply the failure policy to a failed store call.

        The cached decision is left untouched, so a policy-made answer never
        feeds the fail-fast check.

        Raises:
            ExecutionError: If the policy is ``FailurePolicy.RAISE``
        """
        context = get_log_context(
            limiter_key=self.key,
            permits=permits,
            failure_policy=self._failure_policy.value,
        )
        if self._failure_policy is FailurePolicy.RAISE:
            logger.error(f"Rate limiter store call failed: {error.__cause__ or error}", extra=context)
            raise error

        allowed = self._failure_policy is FailurePolicy.ALLOW
        logger.warning(
            f"Rate limiting fail-{'open' if allowed else 'closed'} triggered for "
            f"{self.key}: {error.__cause__ or error}",
            extra=context,
        )
        return allowed


class RedisRateLimiter(_BaseRateLimiter):
    """Token bucket limiter shared through a store, for threaded callers.

    Example:
        >>> limiter = RedisRateLimiter(RedisScriptExecutor(), "search-api", 10)
        >>> if limiter.try_acquire():
        ...     call_search_api()
    """

    def __init__(
        self,
        executor: ScriptExecutor,
        key: str,
        permits_per_second: float,
        max_permits: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the limiter.

        Args:
            executor: Runs the bucket script in the shared store
            key: Bucket identifier, shared by every limiter using it
            permits_per_second: Refill rate
            max_permits: Bucket capacity, defaults to permits_per_second
            **kwargs: failure_policy, clock, key_prefix

        Raises:
            ConfigurationError: If key is empty or a rate is not positive
        """
        super().__init__(key, permits_per_second, max_permits, **kwargs)
        self._executor = executor
        self._lock = threading.Lock()

    def try_acquire(self, permits: int = 1) -> bool:
        """Take ``permits`` from the bucket if they are available now.

        Never waits for capacity.

        Raises:
            ValidationError: If permits is not a positive integer
            ExecutionError: If the store call fails under ``FailurePolicy.RAISE``
        """
        self._validate_permits(permits)
        now_micros = self._clock()
        if self._fails_fast(now_micros):
            return False
        with self._lock:
            # Another thread may have cached a denial while we waited
            if self._fails_fast(now_micros):
                return False
            try:
                decision = self._execute_script(now_micros, permits)
            except ExecutionError as e:
                return self._handle_store_failure(e, permits)
            return self._record(decision, permits)

    def _execute_script(self, now_micros: int, permits: int) -> Decision:
        try:
            result = self._executor.execute(
                TOKEN_BUCKET_SCRIPT,
                self._store_key,
                *self._script_args(now_micros, permits),
            )
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(self.key) from e
        return self._parse_result(result)


class AsyncRedisRateLimiter(_BaseRateLimiter):
    """Token bucket limiter shared through a store, for asyncio callers.

    Same semantics as ``RedisRateLimiter``; concurrent tasks in one event
    loop are coalesced with an ``asyncio.Lock``.
    """

    def __init__(
        self,
        executor: AsyncScriptExecutor,
        key: str,
        permits_per_second: float,
        max_permits: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(key, permits_per_second, max_permits, **kwargs)
        self._executor = executor
        self._lock = asyncio.Lock()

    async def try_acquire(self, permits: int = 1) -> bool:
        """Take ``permits`` from the bucket if they are available now."""
        self._validate_permits(permits)
        now_micros = self._clock()
        if self._fails_fast(now_micros):
            return False
        async with self._lock:
            if self._fails_fast(now_micros):
                return False
            try:
                decision = await self._execute_script(now_micros, permits)
            except ExecutionError as e:
                return self._handle_store_failure(e, permits)
            return self._record(decision, permits)

    async def _execute_script(self, now_micros: int, permits: int) -> Decision:
        try:
            result = await self._executor.execute(
                TOKEN_BUCKET_SCRIPT,
                self._store_key,
                *self._script_args(now_micros, permits),
            )
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(self.key) from e
        return self._parse_result(result)


def create_rate_limiter(
    key: str,
    permits_per_second: float,
    max_permits: Optional[float] = None,
    **kwargs: Any,
) -> RedisRateLimiter:
    """Create a limiter on the global executor chosen by settings."""
    return RedisRateLimiter(
        get_script_executor(),
        key,
        permits_per_second,
        max_permits,
        **kwargs,
    )
