"""Tests for the billing retry policy."""

import pytest

from voicemeter.core.exceptions import ExternalServiceError, ExternalServiceUnavailableError
from voicemeter.domains.billing.retry import RetryPolicy, is_retryable
from voicemeter.domains.billing.tests.conftest import RecordingSleep


class Flaky:
    """Fails with ``error`` for the first ``failures`` calls."""

    def __init__(self, failures: int, error: Exception) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def _policy(sleep: RecordingSleep, **kwargs) -> RetryPolicy:
    values = dict(max_attempts=5, base_delay=1.0, max_delay=30.0, jitter=0.0, sleep=sleep)
    values.update(kwargs)
    return RetryPolicy(**values)


class TestClassification:
    def test_unavailable_is_retryable(self):
        assert is_retryable(ExternalServiceUnavailableError("Stripe", "timeout"))

    @pytest.mark.parametrize(
        "error",
        [ExternalServiceError("Stripe", "No such customer"), ValueError("bad"), RuntimeError()],
    )
    def test_everything_else_is_permanent(self, error):
        assert not is_retryable(error)


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_sleep(self):
        sleep = RecordingSleep()
        fn = Flaky(0, RuntimeError())

        assert await _policy(sleep).call("op", fn) == "ok"
        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_failures_back_off_exponentially(self):
        sleep = RecordingSleep()
        fn = Flaky(3, ExternalServiceUnavailableError("Stripe", "503"))

        assert await _policy(sleep).call("op", fn) == "ok"
        assert fn.calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_delay_is_capped(self):
        sleep = RecordingSleep()
        fn = Flaky(3, ExternalServiceUnavailableError("Stripe", "503"))

        await _policy(sleep, base_delay=10.0, max_delay=15.0).call("op", fn)

        assert sleep.delays == [10.0, 15.0, 15.0]

    @pytest.mark.asyncio
    async def test_jitter_adds_bounded_random_delay(self):
        sleep = RecordingSleep()
        fn = Flaky(2, ExternalServiceUnavailableError("Stripe", "503"))

        await _policy(sleep, jitter=0.5).call("op", fn)

        assert 1.0 <= sleep.delays[0] <= 1.5
        assert 2.0 <= sleep.delays[1] <= 2.5

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        sleep = RecordingSleep()
        fn = Flaky(1, ExternalServiceError("Stripe", "No such customer"))

        with pytest.raises(ExternalServiceError):
            await _policy(sleep).call("op", fn)

        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts_with_last_error(self):
        sleep = RecordingSleep()
        error = ExternalServiceUnavailableError("Stripe", "still down")
        fn = Flaky(10, error)

        with pytest.raises(ExternalServiceUnavailableError) as exc_info:
            await _policy(sleep, max_attempts=3).call("op", fn)

        assert exc_info.value is error
        assert fn.calls == 3
        assert len(sleep.delays) == 2

    def test_from_settings(self):
        class _Settings:
            BILLING_RETRY_MAX_ATTEMPTS = 7
            BILLING_RETRY_BASE_DELAY = 0.5
            BILLING_RETRY_MAX_DELAY = 8.0
            BILLING_RETRY_JITTER = 0.25

        policy = RetryPolicy.from_settings(_Settings())

        assert (policy.max_attempts, policy.base_delay, policy.max_delay, policy.jitter) == (
            7,
            0.5,
            8.0,
            0.25,
        )
