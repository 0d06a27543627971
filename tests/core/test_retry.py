"""Tests for retry utilities."""

from unittest.mock import AsyncMock, patch

import pytest

from ridedispatch.core.exceptions import NetworkError, ValidationError
from ridedispatch.core.retry import RetryConfig, with_retry


@pytest.mark.unit
class TestRetryConfig:
    def test_default_config(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 0.5
        assert config.multiplier == 2.0
        assert config.max_delay == 30.0


@pytest.mark.unit
class TestWithRetry:
    """Test async retry functionality."""

    @pytest.mark.asyncio
    async def test_succeeds_on_first_attempt(self):
        operation = AsyncMock(return_value="success")

        result = await with_retry(operation)

        assert result == "success"
        assert operation.call_count == 1

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        call_count = 0

        async def flaky_operation():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise NetworkError("connection failed")
            return "success"

        result = await with_retry(flaky_operation, RetryConfig(base_delay=0.01))

        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_fails_after_max_attempts(self):
        async def always_fails():
            raise NetworkError("always fails")

        with pytest.raises(NetworkError, match="always fails"):
            await with_retry(always_fails, RetryConfig(max_attempts=3, base_delay=0.01))

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        call_count = 0

        async def fails_with_permanent():
            nonlocal call_count
            call_count += 1
            raise ValidationError("no route")

        with pytest.raises(ValidationError):
            await with_retry(fails_with_permanent, RetryConfig(base_delay=0.01))

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_exponential_backoff_delays(self):
        delays = []

        async def always_fails():
            raise NetworkError("fail")

        async def mock_sleep(delay):
            delays.append(delay)

        config = RetryConfig(max_attempts=4, base_delay=1.0, multiplier=2.0)

        with (
            patch("ridedispatch.core.retry.asyncio.sleep", side_effect=mock_sleep),
            pytest.raises(NetworkError),
        ):
            await with_retry(always_fails, config)

        assert delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_max_delay_cap(self):
        delays = []

        async def always_fails():
            raise NetworkError("fail")

        async def mock_sleep(delay):
            delays.append(delay)

        config = RetryConfig(max_attempts=5, base_delay=10.0, multiplier=3.0, max_delay=20.0)

        with (
            patch("ridedispatch.core.retry.asyncio.sleep", side_effect=mock_sleep),
            pytest.raises(NetworkError),
        ):
            await with_retry(always_fails, config)

        assert all(d <= 20.0 for d in delays)

    @pytest.mark.asyncio
    async def test_on_retry_callback_called(self):
        retries = []

        async def fails_twice():
            if len(retries) < 2:
                raise NetworkError("fail")
            return "success"

        def on_retry(exc, attempt):
            retries.append((type(exc).__name__, attempt))

        await with_retry(fails_twice, RetryConfig(base_delay=0.01), on_retry=on_retry)

        assert retries == [("NetworkError", 0), ("NetworkError", 1)]
