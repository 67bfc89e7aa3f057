"""In-process executor for the token bucket script.

Suitable for single-process deployments and tests. Buckets live in a dict
and every call runs under one lock, so decisions match what Redis produces
for callers in this process only.
"""

import threading
from collections import OrderedDict
from typing import Any, List, Optional, Tuple

from ratelimiter.bucket import (
    TOKEN_BUCKET_SCRIPT,
    BucketState,
    bucket_ttl_millis,
    refill_and_consume,
)
from ratelimiter.core.logging import get_logger
from ratelimiter.exceptions import ExecutionError
from ratelimiter.executors.base import AsyncScriptExecutor, ScriptExecutor

logger = get_logger(__name__)

SWEEP_INTERVAL_MICROS = 1_000_000


class InMemoryScriptExecutor(ScriptExecutor):
    """Runs ``TOKEN_BUCKET_SCRIPT`` against an in-process bucket table.

    The script text selects the procedure; any other script is rejected
    with ``ExecutionError`` because there is no interpreter behind it.

    Buckets expire after the same idle time the script sets with PEXPIRE,
    measured on the callers' clock. Expired buckets are swept at most once
    per second of that clock, and the table is capped at ``max_entries``
    with least-recently-used eviction.
    """

    DEFAULT_MAX_ENTRIES = 10000

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        # key -> (state, expires_at_micros), least recently used first
        self._buckets: "OrderedDict[str, Tuple[BucketState, int]]" = OrderedDict()
        self._max_entries = max_entries
        self._next_sweep_micros: Optional[int] = None
        self._lock = threading.Lock()
        self._calls = 0

    @property
    def calls(self) -> int:
        """Number of script runs since creation or the last ``clear``."""
        return self._calls

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def execute(self, script: str, key: str, *args: str) -> List[Any]:
        if script != TOKEN_BUCKET_SCRIPT:
            raise ExecutionError(key, "unknown script for in-memory executor")
        if len(args) != 4:
            raise ExecutionError(key, f"expected 4 script arguments, got {len(args)}")
        stable_interval_micros = float(args[0])
        max_permits = float(args[1])
        now_micros = int(args[2])
        requested_permits = int(args[3])

        with self._lock:
            self._calls += 1
            self._sweep_expired(now_micros)
            state, decision = refill_and_consume(
                self._live_state(key, now_micros),
                stable_interval_micros,
                max_permits,
                now_micros,
                requested_permits,
            )
            expires_at = now_micros + bucket_ttl_millis(stable_interval_micros, max_permits) * 1000
            self._buckets[key] = (state, expires_at)
            self._buckets.move_to_end(key)
            self._enforce_lru_limit()

        logger.debug(f"In-memory bucket {key}: {state.stored_permits:.3f} permits left")
        return [
            1 if decision.allowed else 0,
            decision.next_free_ticket_micros,
            decision.stored_permits,
        ]

    def _live_state(self, key: str, now_micros: int) -> Optional[BucketState]:
        entry = self._buckets.get(key)
        if entry is None:
            return None
        state, expires_at = entry
        if now_micros >= expires_at:
            del self._buckets[key]
            return None
        return state

    def _sweep_expired(self, now_micros: int) -> None:
        """Drop every expired bucket, at most once per sweep interval."""
        if self._next_sweep_micros is not None and now_micros < self._next_sweep_micros:
            return
        self._next_sweep_micros = now_micros + SWEEP_INTERVAL_MICROS
        expired = [k for k, (_, expires_at) in self._buckets.items() if now_micros >= expires_at]
        for k in expired:
            del self._buckets[k]
        if expired:
            logger.debug(f"Expired {len(expired)} in-memory buckets")

    def _enforce_lru_limit(self) -> None:
        """Enforce max entries limit using LRU eviction."""
        if len(self._buckets) > self._max_entries:
            # Remove oldest 20% of entries
            remove_count = max(1, int(self._max_entries * 0.2))
            for _ in range(remove_count):
                self._buckets.popitem(last=False)

    def get_state(self, key: str) -> Optional[BucketState]:
        """Return a copy of the stored bucket state for ``key``."""
        with self._lock:
            entry = self._buckets.get(key)
            if entry is None:
                return None
            return BucketState.from_dict(entry[0].to_dict())

    def clear(self) -> None:
        """Forget every bucket."""
        with self._lock:
            self._buckets.clear()
            self._next_sweep_micros = None
            self._calls = 0


class AsyncInMemoryScriptExecutor(AsyncScriptExecutor):
    """Asyncio facade over ``InMemoryScriptExecutor``.

    The bucket step never awaits, so the thread lock is held only briefly
    and never across a suspension point.
    """

    def __init__(self, executor: Optional[InMemoryScriptExecutor] = None) -> None:
        self.executor = executor or InMemoryScriptExecutor()

    async def execute(self, script: str, key: str, *args: str) -> List[Any]:
        return self.executor.execute(script, key, *args)
