"""
Retry policy for upstream LLM calls.

Wraps tenacity.AsyncRetrying with exponential backoff plus jitter, a
retryable-error predicate built on ErrorKind and progress events so the
pipeline can show "waiting 63s before attempt 2/4".

One policy type serves both the video analysis calls (long exponential
backoff) and the script fallback chain (fixed short wait, stop early on
server errors).
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

from vidscript.config import Settings
from vidscript.services.ai_clients.base import AIClientError, ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Kinds retried by default
DEFAULT_RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.MODEL_OVERLOADED,
    ErrorKind.SERVICE_UNAVAILABLE,
    ErrorKind.TIMEOUT,
    ErrorKind.QUOTA_EXHAUSTED,
})

# Message phrases that mark an unstructured error as transient
RETRYABLE_PHRASES = (
    "overload",
    "rate limit",
    "quota",
    "busy",
    "temporarily unavailable",
)


@dataclass
class RetryEvent:
    """
    Progress notification emitted by RetryPolicy.execute().

    Attributes:
        status: "attempting", "waiting", "succeeded" or "failed"
        attempt: Attempt number (1-based)
        max_attempts: Total attempts allowed
        context: Caller-supplied label ("Segment 2/5")
        delay: Seconds until the next attempt (waiting only)
        error: Error message of the last failure, if any
    """

    status: str
    attempt: int
    max_attempts: int
    context: str = ""
    delay: float = 0.0
    error: str | None = None

    @property
    def message(self) -> str:
        """Human-readable description."""
        prefix = f"{self.context}: " if self.context else ""
        if self.status == "attempting":
            return f"{prefix}attempt {self.attempt}/{self.max_attempts}"
        if self.status == "waiting":
            return (
                f"{prefix}attempt {self.attempt} failed ({self.error}), "
                f"waiting {self.delay:.0f}s before retry"
            )
        if self.status == "succeeded":
            return f"{prefix}succeeded on attempt {self.attempt}"
        return f"{prefix}failed after {self.attempt} attempt(s): {self.error}"


RetryProgressCallback = Callable[[RetryEvent], None]


class RetryPolicy:
    """
    Bounded retry with backoff for async operations.

    Example:
        policy = RetryPolicy.from_settings(settings)
        text = await policy.execute(
            lambda: client.generate_text(prompt),
            context="Duration",
            on_progress=lambda event: print(event.message),
        )
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 60.0,
        max_delay: float = 300.0,
        jitter: float = 0.1,
        retryable_kinds: frozenset[ErrorKind] = DEFAULT_RETRYABLE_KINDS,
        retryable: Callable[[BaseException], bool] | None = None,
        short_circuit: Callable[[BaseException], bool] | None = None,
        wait: Callable[[RetryCallState], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initialize retry policy.

        Args:
            max_retries: Retries after the first attempt
            base_delay: Backoff base in seconds
            max_delay: Backoff cap in seconds
            jitter: Upper bound of the random backoff multiplier increment
            retryable_kinds: ErrorKinds retried by the default predicate
            retryable: Custom retryable predicate (replaces the default one)
            short_circuit: Errors that stop retrying immediately
            wait: tenacity wait strategy (default: exponential backoff)
            sleep: Async sleep function (injectable for tests)
            rng: Random source for jitter (injectable for tests)
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retryable_kinds = retryable_kinds
        self._retryable = retryable
        self._short_circuit = short_circuit
        self._wait = wait or self._backoff_wait
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "RetryPolicy":
        """
        Create RetryPolicy from application settings.

        Args:
            settings: Application settings
            **overrides: Constructor arguments taking precedence (sleep, rng, ...)

        Returns:
            Configured RetryPolicy
        """
        params = {
            "max_retries": settings.retry_max_retries,
            "base_delay": settings.retry_base_delay,
            "max_delay": settings.retry_max_delay,
            "jitter": settings.retry_jitter,
        }
        params.update(overrides)
        return cls(**params)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    # ═══════════════════════════════════════════════════════════════════════════
    # Classification and delays
    # ═══════════════════════════════════════════════════════════════════════════

    def is_retryable(self, error: BaseException) -> bool:
        """
        Check whether waiting and trying again makes sense.

        Args:
            error: Raised exception

        Returns:
            True if the error should be retried
        """
        if self._short_circuit is not None and self._short_circuit(error):
            return False
        if self._retryable is not None:
            return self._retryable(error)
        if isinstance(error, AIClientError):
            return error.kind in self.retryable_kinds

        message = str(error).lower()
        return any(phrase in message for phrase in RETRYABLE_PHRASES)

    def compute_delay(self, attempt: int) -> float:
        """
        Backoff before the attempt after ``attempt``.

        min(base * 2^(attempt-1) * (1 + U[0, jitter]), max)

        Args:
            attempt: Number of the attempt that just failed (1-based)

        Returns:
            Delay in seconds
        """
        factor = 1 + (self._rng.uniform(0, self.jitter) if self.jitter > 0 else 0)
        delay = self.base_delay * (2 ** (attempt - 1)) * factor
        return min(delay, self.max_delay)

    def _backoff_wait(self, retry_state: RetryCallState) -> float:
        return self.compute_delay(retry_state.attempt_number)

    # ═══════════════════════════════════════════════════════════════════════════
    # Execution
    # ═══════════════════════════════════════════════════════════════════════════

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str = "",
        on_progress: RetryProgressCallback | None = None,
    ) -> T:
        """
        Run an async operation with retries.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            context: Label for logs and progress events
            on_progress: Optional synchronous progress callback

        Returns:
            Result of the first successful attempt

        Raises:
            Exception: The last error once attempts are exhausted or the
                error is not retryable
        """
        max_attempts = self.max_attempts

        def notify(event: RetryEvent) -> None:
            log = logger.warning if event.status in ("waiting", "failed") else logger.info
            log(event.message)
            if on_progress is None:
                return
            try:
                on_progress(event)
            except Exception as e:
                logger.warning(f"Retry progress callback failed: {e}")

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            notify(RetryEvent(
                status="waiting",
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
                context=context,
                delay=retry_state.next_action.sleep if retry_state.next_action else 0.0,
                error=str(error) if error else None,
            ))

        retrying = AsyncRetrying(
            stop=lambda retry_state: retry_state.attempt_number >= max_attempts,
            wait=self._wait,
            retry=retry_if_exception(self.is_retryable),
            sleep=self._sleep,
            before_sleep=before_sleep,
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1:
                        notify(RetryEvent(
                            status="attempting",
                            attempt=attempt_number,
                            max_attempts=max_attempts,
                            context=context,
                        ))
                    result = await operation()
        except Exception as e:
            notify(RetryEvent(
                status="failed",
                attempt=attempt_number,
                max_attempts=max_attempts,
                context=context,
                error=str(e),
            ))
            raise

        if attempt_number > 1:
            notify(RetryEvent(
                status="succeeded",
                attempt=attempt_number,
                max_attempts=max_attempts,
                context=context,
            ))
        return result


if __name__ == "__main__":
    """Run tests when executed directly."""

    print("Testing RetryPolicy...")

    policy = RetryPolicy(base_delay=60, max_delay=300, jitter=0)
    assert [policy.compute_delay(n) for n in (1, 2, 3, 4)] == [60, 120, 240, 300]
    print("  compute_delay: OK")

    assert policy.is_retryable(AIClientError("x", kind=ErrorKind.RATE_LIMITED))
    assert not policy.is_retryable(AIClientError("x", kind=ErrorKind.BAD_REQUEST))
    assert policy.is_retryable(RuntimeError("Model is overloaded"))
    assert not policy.is_retryable(RuntimeError("boom"))
    print("  is_retryable: OK")

    async def no_sleep(_: float) -> None:
        pass

    calls = []

    async def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise AIClientError("busy", kind=ErrorKind.MODEL_OVERLOADED)
        return "ok"

    fast = RetryPolicy(jitter=0, sleep=no_sleep)
    events: list[RetryEvent] = []
    assert asyncio.run(fast.execute(flaky, "demo", events.append)) == "ok"
    assert [e.status for e in events] == [
        "waiting", "attempting", "waiting", "attempting", "succeeded",
    ]
    print("  execute: OK")

    print("\nAll retry policy tests passed!")
