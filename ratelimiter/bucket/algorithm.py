"""Token bucket refill-and-consume in Python.

Mirrors ``TOKEN_BUCKET_SCRIPT`` step for step. The in-memory executor runs
it under a lock, which gives single-process deployments and tests the same
decisions Redis would produce.
"""

import math
from typing import Optional, Tuple

from ratelimiter.bucket.models import BucketState, Decision


def bucket_ttl_millis(stable_interval_micros: float, max_permits: float) -> int:
    """Idle time after which a bucket is full again, plus one second.

    Same value the Lua script passes to PEXPIRE.
    """
    return math.ceil(max_permits * stable_interval_micros / 1000) + 1000


def refill_and_consume(
    state: Optional[BucketState],
    stable_interval_micros: float,
    max_permits: float,
    now_micros: int,
    requested_permits: int,
) -> Tuple[BucketState, Decision]:
    """Refill the bucket up to ``now_micros`` and try to take permits.

    Args:
        state: Current bucket state, or None if the key has never been used
        stable_interval_micros: Microseconds needed to regenerate one permit
        max_permits: Bucket capacity
        now_micros: Caller's clock in microseconds
        requested_permits: Permits to consume

    Returns:
        Tuple of the state to persist and the decision for the caller.
        The input state is never mutated.
    """
    if state is None:
        stored_permits = float(max_permits)
        last_refill_micros = now_micros
    else:
        stored_permits = state.stored_permits
        last_refill_micros = state.last_refill_micros

    elapsed = max(0, now_micros - last_refill_micros)
    stored_permits = min(max_permits, stored_permits + elapsed / stable_interval_micros)
    if now_micros > last_refill_micros:
        last_refill_micros = now_micros

    if stored_permits >= requested_permits:
        stored_permits -= requested_permits
        decision_allowed = True
        next_free_ticket_micros = now_micros
    else:
        deficit = requested_permits - stored_permits
        decision_allowed = False
        next_free_ticket_micros = now_micros + math.ceil(deficit * stable_interval_micros)

    new_state = BucketState(
        stored_permits=stored_permits,
        last_refill_micros=last_refill_micros,
    )
    decision = Decision(
        allowed=decision_allowed,
        next_free_ticket_micros=next_free_ticket_micros,
        stored_permits=math.floor(stored_permits),
    )
    return new_state, decision
