"""Tests for the token bucket refill-and-consume step."""

import pytest

from ratelimiter.bucket import BucketState, refill_and_consume

T0 = 1_700_000_000_000_000
INTERVAL = 100_000.0  # 10 permits per second


class TestNewBucket:
    """A key seen for the first time starts with a full bucket."""

    def test_absent_state_starts_full(self):
        state, decision = refill_and_consume(None, INTERVAL, 10.0, T0, 1)
        assert decision.allowed is True
        assert state.stored_permits == 9.0
        assert state.last_refill_micros == T0
        assert decision.next_free_ticket_micros == T0
        assert decision.stored_permits == 9

    def test_initial_burst_up_to_capacity(self):
        state, decision = refill_and_consume(None, INTERVAL, 10.0, T0, 10)
        assert decision.allowed is True
        assert state.stored_permits == 0.0

    def test_request_larger_than_capacity_is_denied(self):
        state, decision = refill_and_consume(None, INTERVAL, 10.0, T0, 11)
        assert decision.allowed is False
        assert state.stored_permits == 10.0


class TestConsume:
    """Tests for admission and denial."""

    def test_admitted_call_consumes_exactly_requested(self):
        before = BucketState(stored_permits=7.5, last_refill_micros=T0)
        after, decision = refill_and_consume(before, INTERVAL, 10.0, T0, 3)
        assert decision.allowed is True
        assert after.stored_permits == pytest.approx(4.5)
        assert decision.stored_permits == 4

    def test_denied_call_leaves_permits_untouched(self):
        before = BucketState(stored_permits=0.5, last_refill_micros=T0)
        after, decision = refill_and_consume(before, INTERVAL, 10.0, T0, 2)
        assert decision.allowed is False
        assert after.stored_permits == 0.5
        assert after.last_refill_micros == T0

    def test_denied_call_reports_wait_for_deficit(self):
        before = BucketState(stored_permits=0.5, last_refill_micros=T0)
        _, decision = refill_and_consume(before, INTERVAL, 10.0, T0, 2)
        # 1.5 permits short at 100ms each
        assert decision.next_free_ticket_micros == T0 + 150_000

    def test_wait_is_rounded_up(self):
        before = BucketState(stored_permits=0.0, last_refill_micros=T0)
        _, decision = refill_and_consume(before, 3.0, 10.0, T0, 1)
        assert decision.next_free_ticket_micros == T0 + 3
        before = BucketState(stored_permits=0.5, last_refill_micros=T0)
        _, decision = refill_and_consume(before, 3.0, 10.0, T0, 1)
        # 1.5 micros rounds up to 2
        assert decision.next_free_ticket_micros == T0 + 2

    def test_input_state_is_not_mutated(self):
        before = BucketState(stored_permits=5.0, last_refill_micros=T0)
        refill_and_consume(before, INTERVAL, 10.0, T0 + 50_000, 1)
        assert before.stored_permits == 5.0
        assert before.last_refill_micros == T0


class TestRefill:
    """Tests for time-based refill."""

    def test_refill_is_linear_in_elapsed_time(self):
        before = BucketState(stored_permits=2.0, last_refill_micros=T0)
        after, decision = refill_and_consume(before, INTERVAL, 10.0, T0 + 250_000, 1)
        # 2 + 2.5 refilled - 1 consumed
        assert after.stored_permits == pytest.approx(3.5)
        assert after.last_refill_micros == T0 + 250_000
        assert decision.allowed is True

    def test_refill_is_capped_at_capacity(self):
        before = BucketState(stored_permits=2.0, last_refill_micros=T0)
        after, _ = refill_and_consume(before, INTERVAL, 10.0, T0 + 60_000_000, 1)
        assert after.stored_permits == 9.0

    def test_lowered_capacity_clamps_stored_permits(self):
        before = BucketState(stored_permits=10.0, last_refill_micros=T0)
        after, decision = refill_and_consume(before, INTERVAL, 4.0, T0, 5)
        assert decision.allowed is False
        assert after.stored_permits == 4.0

    @pytest.mark.parametrize("elapsed", [0, 1, 99_999, 100_000, 333_333, 5_000_000])
    def test_refill_without_consumption_matches_formula(self, elapsed):
        before = BucketState(stored_permits=1.25, last_refill_micros=T0)
        # A request larger than capacity never consumes
        after, _ = refill_and_consume(before, INTERVAL, 10.0, T0 + elapsed, 11)
        assert after.stored_permits == pytest.approx(min(10.0, 1.25 + elapsed / INTERVAL))


class TestClockRegression:
    """Calls stamped before the last refill must not corrupt the bucket."""

    def test_regressed_clock_refills_nothing(self):
        before = BucketState(stored_permits=3.0, last_refill_micros=T0)
        after, decision = refill_and_consume(before, INTERVAL, 10.0, T0 - 5_000_000, 11)
        assert after.stored_permits == 3.0
        assert after.last_refill_micros == T0
        assert decision.allowed is False

    def test_regressed_clock_keeps_timestamp_when_consuming(self):
        before = BucketState(stored_permits=3.0, last_refill_micros=T0)
        after, decision = refill_and_consume(before, INTERVAL, 10.0, T0 - 1, 1)
        assert decision.allowed is True
        assert after.stored_permits == 2.0
        assert after.last_refill_micros == T0

    def test_refill_after_regression_counts_from_last_refill(self):
        before = BucketState(stored_permits=0.0, last_refill_micros=T0)
        mid, _ = refill_and_consume(before, INTERVAL, 10.0, T0 - 1_000_000, 11)
        after, _ = refill_and_consume(mid, INTERVAL, 10.0, T0 + 100_000, 11)
        assert after.stored_permits == pytest.approx(1.0)


class TestInvariants:
    """Stored permits stay within [0, capacity] over arbitrary call sequences."""

    def test_bounds_hold_over_mixed_sequence(self):
        state = None
        now = T0
        steps = [(0, 3), (10_000, 5), (0, 4), (1_000_000, 1), (-50_000, 2),
                 (20_000_000, 9), (0, 1), (1, 1), (150_000, 6), (0, 7)]
        for delta, permits in steps:
            now += delta
            previous = state.stored_permits if state else None
            state, decision = refill_and_consume(state, INTERVAL, 10.0, now, permits)
            assert 0.0 <= state.stored_permits <= 10.0
            if decision.allowed and previous is not None and delta <= 0:
                assert state.stored_permits == pytest.approx(previous - permits)
