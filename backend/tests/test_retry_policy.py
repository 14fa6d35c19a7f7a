"""Tests for RetryPolicy."""

import asyncio
import random

import pytest

from vidscript.services.ai_clients import AIClientError, ErrorKind
from vidscript.services.retry_policy import RetryEvent, RetryPolicy


class Flaky:
    """Operation failing with the given errors before succeeding."""

    def __init__(self, *errors: Exception, result: str = "ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def overloaded() -> AIClientError:
    return AIClientError("overloaded", kind=ErrorKind.MODEL_OVERLOADED)


def test_delays_without_jitter_are_deterministic():
    policy = RetryPolicy(base_delay=60, max_delay=300, jitter=0)

    assert [policy.compute_delay(n) for n in range(1, 6)] == [60, 120, 240, 300, 300]


def test_jitter_stays_within_bounds():
    policy = RetryPolicy(base_delay=60, max_delay=1000, jitter=0.1, rng=random.Random(7))

    for _ in range(50):
        assert 60 <= policy.compute_delay(1) <= 66


def test_retries_until_success_and_sleeps_backoff(sleep):
    policy = RetryPolicy(max_retries=3, base_delay=60, jitter=0, sleep=sleep)
    operation = Flaky(overloaded(), overloaded())

    assert asyncio.run(policy.execute(operation)) == "ok"
    assert operation.calls == 3
    assert sleep.calls == [60, 120]


def test_non_retryable_error_attempted_once(sleep):
    policy = RetryPolicy(sleep=sleep)
    operation = Flaky(AIClientError("bad request", kind=ErrorKind.BAD_REQUEST))

    with pytest.raises(AIClientError, match="bad request"):
        asyncio.run(policy.execute(operation))

    assert operation.calls == 1
    assert sleep.calls == []


def test_exhausted_retries_reraise_last_error(sleep):
    policy = RetryPolicy(max_retries=2, jitter=0, sleep=sleep)
    operation = Flaky(overloaded(), overloaded(), AIClientError("final", kind=ErrorKind.RATE_LIMITED))

    with pytest.raises(AIClientError, match="final"):
        asyncio.run(policy.execute(operation))

    assert operation.calls == 3


def test_progress_events(sleep):
    policy = RetryPolicy(max_retries=3, base_delay=10, jitter=0, sleep=sleep)
    events: list[RetryEvent] = []

    asyncio.run(policy.execute(Flaky(overloaded()), context="Segment 1/2", on_progress=events.append))

    assert [e.status for e in events] == ["waiting", "attempting", "succeeded"]
    waiting = events[0]
    assert waiting.delay == 10
    assert waiting.max_attempts == 4
    assert "Segment 1/2" in waiting.message
    assert events[1].attempt == 2


def test_failed_event_on_give_up(sleep):
    policy = RetryPolicy(max_retries=0, sleep=sleep)
    events: list[RetryEvent] = []

    with pytest.raises(AIClientError):
        asyncio.run(policy.execute(Flaky(overloaded()), on_progress=events.append))

    assert [e.status for e in events] == ["failed"]


def test_callback_errors_do_not_break_retry(sleep):
    policy = RetryPolicy(max_retries=1, jitter=0, sleep=sleep)

    def broken(event: RetryEvent) -> None:
        raise RuntimeError("ui gone")

    assert asyncio.run(policy.execute(Flaky(overloaded()), on_progress=broken)) == "ok"


def test_unstructured_errors_matched_by_phrase():
    policy = RetryPolicy()

    assert policy.is_retryable(RuntimeError("Service temporarily unavailable"))
    assert policy.is_retryable(RuntimeError("Rate limit reached"))
    assert not policy.is_retryable(RuntimeError("division by zero"))


def test_short_circuit_wins_over_retryable():
    policy = RetryPolicy(retryable=lambda e: True, short_circuit=lambda e: "500" in str(e))

    assert not policy.is_retryable(RuntimeError("HTTP 500"))
    assert policy.is_retryable(RuntimeError("HTTP 429"))
