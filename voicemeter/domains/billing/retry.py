"""Retry policy for payment-provider calls.

Bounded exponential backoff with jitter on top of tenacity. Only
``ExternalServiceUnavailableError`` (network errors, timeouts, 5xx, rate
limits) is retried; anything else propagates on the first attempt.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from voicemeter.core.exceptions import ExternalServiceUnavailableError
from voicemeter.core.logging import ContextualLogger, logger

T = TypeVar("T")


def is_retryable(exception: BaseException) -> bool:
    """Transient provider failures are retryable; everything else is permanent."""
    return isinstance(exception, ExternalServiceUnavailableError)


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts, base delay, delay cap and jitter for external billing calls."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, compare=False)

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        """Build from application settings."""
        return cls(
            max_attempts=settings.BILLING_RETRY_MAX_ATTEMPTS,
            base_delay=settings.BILLING_RETRY_BASE_DELAY,
            max_delay=settings.BILLING_RETRY_MAX_DELAY,
            jitter=settings.BILLING_RETRY_JITTER,
        )

    async def call(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        log: Optional[ContextualLogger] = None,
    ) -> T:
        """Run ``fn`` until it succeeds, fails permanently or attempts run out.

        The last exception is re-raised unchanged.
        """
        log = log or logger
        started = time.monotonic()

        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            wait = state.next_action.sleep if state.next_action else 0.0
            log.warning(
                f"{operation} attempt {state.attempt_number}/{self.max_attempts} failed "
                f"after {time.monotonic() - started:.2f}s: {exc}; retrying in {wait:.2f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay)
            + wait_random(0, self.jitter),
            retry=retry_if_exception(is_retryable),
            before_sleep=_before_sleep,
            sleep=self.sleep,
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    result = await fn()
        except Exception as e:
            log.error(
                f"{operation} gave up after {attempt_number} attempt(s) "
                f"in {time.monotonic() - started:.2f}s: {e}"
            )
            raise

        log.info(
            f"{operation} succeeded on attempt {attempt_number} "
            f"in {time.monotonic() - started:.2f}s"
        )
        return result
