"""Tests for the retry policy and cancellation token."""

import asyncio

import pytest

from src.voicescribe.core.asr.cancellation import CancellationToken
from src.voicescribe.core.asr.errors import (
    AudioFileNotFoundError,
    AuthenticationFailedError,
    EmptyCredentialError,
    ErrorKind,
    InvalidAudioFormatError,
    InvalidEndpointError,
    InvalidResponseError,
    NetworkError,
    OperationCancelled,
    RateLimitedError,
    ServiceUnavailableError,
)
from src.voicescribe.core.asr.retry import RetryPolicy


class RecordingSleep:
    def __init__(self, cancel_on_call=None):
        self.delays = []
        self.cancel_on_call = cancel_on_call

    async def __call__(self, token, delay):
        self.delays.append(delay)
        if self.cancel_on_call is not None and len(self.delays) == self.cancel_on_call:
            token.cancel()
            return False
        return True


def failing_operation(error, calls):
    async def operation():
        calls.append(1)
        raise error

    return operation


class TestClassification:
    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("down"),
            ServiceUnavailableError("busy", 503),
            RateLimitedError("slow down", 429),
            InvalidResponseError("garbage", 200),
        ],
    )
    def test_transient_errors_are_retryable(self, error):
        assert RetryPolicy.is_retryable(error)

    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationFailedError("nope", 401),
            InvalidAudioFormatError("bad", 400),
            EmptyCredentialError("empty"),
            InvalidEndpointError("bad url"),
            AudioFileNotFoundError("missing"),
        ],
    )
    def test_permanent_errors_are_not_retryable(self, error):
        assert not RetryPolicy.is_retryable(error)

    def test_rate_limited_and_unavailable_are_distinct(self):
        assert RateLimitedError.kind is ErrorKind.RATE_LIMITED
        assert ServiceUnavailableError.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert not issubclass(RateLimitedError, ServiceUnavailableError)
        assert not issubclass(ServiceUnavailableError, RateLimitedError)


class TestBackoff:
    def test_delays_double_from_base(self):
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_jitter_stays_within_bound(self):
        policy = RetryPolicy(base_delay=1.0, jitter=0.5)
        for attempt in (1, 2, 3):
            base = 2 ** (attempt - 1)
            assert base <= policy.delay_for(attempt) <= base + 0.5

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)


class TestRun:
    def test_returns_first_success(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(sleep=sleep)

        async def operation():
            return "hello"

        assert asyncio.run(policy.run(operation)) == "hello"
        assert sleep.delays == []

    def test_service_unavailable_retried_three_times_then_surfaced(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(sleep=sleep)
        calls = []
        error = ServiceUnavailableError("Service unavailable (HTTP 503)", 503)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            asyncio.run(policy.run(failing_operation(error, calls)))

        assert exc_info.value is error
        assert len(calls) == 4
        assert sleep.delays == [1.0, 2.0, 4.0]

    def test_authentication_failure_not_retried(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(sleep=sleep)
        calls = []

        with pytest.raises(AuthenticationFailedError):
            asyncio.run(
                policy.run(failing_operation(AuthenticationFailedError("no", 401), calls))
            )

        assert len(calls) == 1
        assert sleep.delays == []

    def test_recovers_after_transient_failure(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(sleep=sleep)
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise NetworkError("connection reset")
            return "ok"

        assert asyncio.run(policy.run(operation)) == "ok"
        assert sleep.delays == [1.0, 2.0]

    def test_cancellation_during_backoff(self):
        sleep = RecordingSleep(cancel_on_call=2)
        policy = RetryPolicy(sleep=sleep)
        calls = []
        error = RateLimitedError("Rate limit exceeded", 429)

        with pytest.raises(OperationCancelled) as exc_info:
            asyncio.run(policy.run(failing_operation(error, calls)))

        assert len(calls) == 2
        assert exc_info.value.__cause__ is error

    def test_already_cancelled_token_skips_operation(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        async def operation():
            calls.append(1)
            return "never"

        with pytest.raises(OperationCancelled):
            asyncio.run(RetryPolicy().run(operation, token))
        assert calls == []


class TestCancellationToken:
    def test_sleep_completes(self):
        token = CancellationToken()
        assert asyncio.run(token.sleep(0.01)) is True

    def test_sleep_returns_early_when_cancelled(self):
        token = CancellationToken()

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, token.cancel)
            started = loop.time()
            completed = await token.sleep(10)
            return completed, loop.time() - started

        completed, elapsed = asyncio.run(scenario())
        assert completed is False
        assert elapsed < 5

    def test_cancel_from_another_thread(self):
        token = CancellationToken()

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, lambda: loop.run_in_executor(None, token.cancel))
            return await token.sleep(10)

        assert asyncio.run(scenario()) is False
        assert token.is_cancelled

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        token.cancel()
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()
