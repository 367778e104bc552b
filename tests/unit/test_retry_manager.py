"""
Unit tests for the retry manager.
"""
import pytest

from pdf_translator.core.exceptions import (
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderRateLimitError,
    RetryExhaustedError,
)
from pdf_translator.core.retry_manager import (
    RetryConfig,
    RetryManager,
    RetryStrategy,
)


def fast_manager(max_attempts=3, **kwargs):
    return RetryManager(
        default_config=RetryConfig(max_attempts=max_attempts, initial_delay=0.0, jitter=0.0),
        inherit_defaults=False,
        **kwargs
    )


class Flaky:
    """Async callable failing a set number of times before succeeding."""

    def __init__(self, failures, error_factory=lambda: ProviderConnectionError("down")):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return value


class TestRetryManager:
    """Tests for RetryManager.execute_with_retry()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        func = Flaky(0)
        assert await fast_manager().execute_with_retry(func, "ok") == "ok"
        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        func = Flaky(2)
        assert await fast_manager(3).execute_with_retry(func, "ok") == "ok"
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error(self):
        func = Flaky(5)
        with pytest.raises(RetryExhaustedError) as exc_info:
            await fast_manager(3).execute_with_retry(func, "ok")

        assert func.calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.original_error, ProviderConnectionError)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_non_recoverable_is_not_retried(self):
        func = Flaky(5, lambda: ProviderAuthenticationError("bad key"))
        with pytest.raises(ProviderAuthenticationError):
            await fast_manager(3).execute_with_retry(func, "ok")

        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_plain_exceptions_are_retried(self):
        func = Flaky(1, lambda: ValueError("parse"))
        assert await fast_manager(2).execute_with_retry(func, "ok") == "ok"

    @pytest.mark.asyncio
    async def test_on_retry_callback(self):
        seen = []
        func = Flaky(2)
        await fast_manager(3).execute_with_retry(
            func, "ok", on_retry=lambda error, attempt: seen.append(attempt)
        )

        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_log_callback_receives_warnings(self):
        messages = []
        func = Flaky(1)
        await fast_manager(2, log_callback=lambda t, m: messages.append(t)).execute_with_retry(
            func, "ok"
        )

        assert "warning" in messages
        assert "info" in messages

    @pytest.mark.asyncio
    async def test_per_type_config(self):
        """A specific config for the error type overrides the default attempts."""
        manager = RetryManager(
            default_config=RetryConfig(max_attempts=5, initial_delay=0.0, jitter=0.0),
            custom_configs={
                ProviderRateLimitError: RetryConfig(max_attempts=2, initial_delay=0.0, jitter=0.0)
            },
            inherit_defaults=False,
        )
        func = Flaky(5, lambda: ProviderRateLimitError("slow down"))

        with pytest.raises(RetryExhaustedError):
            await manager.execute_with_retry(func, "ok")
        assert func.calls == 2


class TestDelays:
    """Tests for backoff calculation."""

    def test_exponential(self):
        manager = RetryManager()
        config = RetryConfig(initial_delay=1.0, backoff_factor=2.0, jitter=0.0)

        assert [manager.calculate_delay(a, config) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_capped(self):
        manager = RetryManager()
        config = RetryConfig(initial_delay=10.0, max_delay=15.0, jitter=0.0)

        assert manager.calculate_delay(3, config) == 15.0

    def test_linear_and_immediate(self):
        manager = RetryManager()
        linear = RetryConfig(initial_delay=2.0, jitter=0.0, strategy=RetryStrategy.LINEAR)
        immediate = RetryConfig(initial_delay=2.0, strategy=RetryStrategy.IMMEDIATE)

        assert manager.calculate_delay(3, linear) == 6.0
        assert manager.calculate_delay(3, immediate) == 0.0

    def test_jitter_bounds(self):
        manager = RetryManager()
        config = RetryConfig(initial_delay=1.0, jitter=0.5)

        for _ in range(20):
            assert 1.0 <= manager.calculate_delay(1, config) <= 1.5

    def test_default_configs_resolve_by_type(self):
        manager = RetryManager()

        assert manager.get_config(ProviderAuthenticationError("x")).strategy == RetryStrategy.NONE
        assert manager.get_config(ProviderRateLimitError("x")).initial_delay == 10.0
        assert manager.get_config(KeyError("x")) is manager.default_config
