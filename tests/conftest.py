"""Shared fixtures for rate limiter tests."""

import pytest

from ratelimiter.executors import InMemoryScriptExecutor, reset_script_executor

# Arbitrary wall-clock instant in microseconds
T0 = 1_700_000_000_000_000


class FakeClock:
    """Manually advanced microsecond clock."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, micros: int) -> None:
        self.now += micros


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global state before each test."""
    reset_script_executor()
    yield
    reset_script_executor()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def executor():
    return InMemoryScriptExecutor()
