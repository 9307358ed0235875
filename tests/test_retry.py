"""
Tests for the retry policy: classification, backoff bounds and attempt limits.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from lexiflow.config.settings import RetryConfig
from lexiflow.core.errors import ProviderError
from lexiflow.core.retry import (
    RetryPolicy,
    backoff_delay,
    extract_status_code,
    status_code_classifier,
)
from lexiflow.observability.metrics import get_metrics_collector

from conftest import StatusError


class TestStatusClassification:
    """Test status code extraction and the default retry predicate."""

    def test_status_code_attribute(self):
        assert extract_status_code(ProviderError("boom", 503)) == 503

    def test_status_attribute(self):
        error = Exception("boom")
        error.status = 429
        assert extract_status_code(error) == 429

    def test_status_on_response(self):
        error = Exception("boom")
        error.response = SimpleNamespace(status_code=502)
        assert extract_status_code(error) == 502

    def test_no_status(self):
        assert extract_status_code(ValueError("boom")) is None

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504, 529])
    def test_retryable_codes(self, status):
        classify = status_code_classifier(RetryConfig().retryable_status_codes)
        assert classify(StatusError(status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_non_retryable_codes(self, status):
        classify = status_code_classifier(RetryConfig().retryable_status_codes)
        assert classify(StatusError(status)) is False

    def test_error_without_status_is_not_retryable(self):
        classify = status_code_classifier(RetryConfig().retryable_status_codes)
        assert classify(RuntimeError("network down")) is False


class TestBackoffDelay:
    """Test the exponential backoff with jitter."""

    def test_midpoint_has_no_jitter(self):
        config = RetryConfig()
        assert backoff_delay(0, config, rand=lambda: 0.5) == 1000
        assert backoff_delay(1, config, rand=lambda: 0.5) == 2000
        assert backoff_delay(3, config, rand=lambda: 0.5) == 8000

    def test_base_is_capped(self):
        config = RetryConfig()
        assert backoff_delay(5, config, rand=lambda: 0.5) == 32000
        assert backoff_delay(12, config, rand=lambda: 0.5) == 32000

    def test_jitter_extremes(self):
        config = RetryConfig()
        assert backoff_delay(0, config, rand=lambda: 0.0) == pytest.approx(750)
        assert backoff_delay(0, config, rand=lambda: 1.0) == pytest.approx(1250)

    @pytest.mark.parametrize("attempt", range(10))
    @pytest.mark.parametrize("rand_value", [0.0, 0.1, 0.37, 0.5, 0.81, 0.999])
    def test_delay_within_jitter_bounds(self, attempt, rand_value):
        config = RetryConfig()
        base = min(32000, 1000 * 2**attempt)
        delay = backoff_delay(attempt, config, rand=lambda: rand_value)
        assert 0.75 * base <= delay <= 1.25 * base
        assert delay <= 1.25 * 32000


class TestRetryPolicy:
    """Test RetryPolicy.execute over async operations."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, retry_policy, sleep_mock):
        operation = AsyncMock(return_value="ok")

        result = await retry_policy.execute(operation, "test op")

        assert result == "ok"
        assert operation.await_count == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_errors_then_succeeds(self, retry_policy, sleep_mock):
        operation = AsyncMock(
            side_effect=[ProviderError("busy", 503), ProviderError("limited", 429), "ok"]
        )

        result = await retry_policy.execute(operation, "test op")

        assert result == "ok"
        assert operation.await_count == 3
        assert sleep_mock.await_count == 2
        delays = [call.args[0] for call in sleep_mock.await_args_list]
        assert delays == [pytest.approx(1.0), pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self, retry_policy, sleep_mock):
        error = ProviderError("bad request", 400)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(ProviderError) as exc_info:
            await retry_policy.execute(operation, "test op")

        assert exc_info.value is error
        assert operation.await_count == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_last_error(self, retry_policy, sleep_mock):
        errors = [ProviderError(f"overloaded {i}", 529) for i in range(5)]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(ProviderError) as exc_info:
            await retry_policy.execute(operation, "test op")

        assert exc_info.value is errors[-1]
        assert operation.await_count == 5
        assert sleep_mock.await_count == 4

    @pytest.mark.asyncio
    async def test_attempt_limit_from_config(self, sleep_mock):
        policy = RetryPolicy(RetryConfig(max_attempts=2), sleep=sleep_mock, rand=lambda: 0.5)
        operation = AsyncMock(side_effect=StatusError(500))

        with pytest.raises(StatusError):
            await policy.execute(operation, "test op")

        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_custom_classifier(self, sleep_mock):
        policy = RetryPolicy(
            is_retryable=lambda e: isinstance(e, TimeoutError),
            sleep=sleep_mock,
            rand=lambda: 0.5,
        )
        operation = AsyncMock(side_effect=[TimeoutError(), "ok"])

        assert await policy.execute(operation, "test op") == "ok"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_are_counted(self, retry_policy):
        operation = AsyncMock(side_effect=[ProviderError("busy", 503), "ok"])

        await retry_policy.execute(operation, "counted op")

        summary = get_metrics_collector().get_summary()
        assert summary["retries"] == {"counted op": 1}
