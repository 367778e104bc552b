"""
Retry policy for provider calls.

A RetryManager resolves a RetryConfig for each failure by exception type
(walking the class hierarchy, so ProviderRateLimitError can have its own
policy while other ProviderErrors share one), sleeps according to the
configured backoff and tries again. Errors flagged as not recoverable are
surfaced immediately; anything else that outlives its attempt budget is
wrapped in RetryExhaustedError.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pdf_translator.core.exceptions import (
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    RetryExhaustedError,
    TranslationError,
)

logger = logging.getLogger(__name__)


class RetryStrategy(Enum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    IMMEDIATE = "immediate"
    NONE = "none"


@dataclass
class RetryConfig:
    """How often and how patiently to retry one kind of failure.

    Attributes:
        max_attempts: Attempts in total, the first call included
        initial_delay: Seconds before the first retry
        max_delay: Upper bound on any single delay, in seconds
        backoff_factor: Growth per attempt for EXPONENTIAL
        jitter: Extra random share of the delay (0.1 adds up to 10%)
        strategy: How the delay grows between attempts
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: float = 0.1
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL


DEFAULT_RETRY_CONFIGS: Dict[Type[Exception], RetryConfig] = {
    ProviderConnectionError: RetryConfig(max_attempts=5, initial_delay=2.0, max_delay=30.0),
    # Servers asking us to slow down get longer pauses
    ProviderRateLimitError: RetryConfig(max_attempts=3, initial_delay=10.0, max_delay=120.0),
    ProviderAuthenticationError: RetryConfig(max_attempts=1, strategy=RetryStrategy.NONE),
    ProviderError: RetryConfig(max_attempts=3, initial_delay=1.0),
}


class RetryManager:
    """Retries async callables according to per-exception-type policies."""

    def __init__(
        self,
        default_config: Optional[RetryConfig] = None,
        custom_configs: Optional[Dict[Type[Exception], RetryConfig]] = None,
        inherit_defaults: bool = True,
        log_callback: Optional[Callable[[str, str], None]] = None
    ):
        """
        Args:
            default_config: Policy for exceptions with no entry of their own
            custom_configs: Policies keyed by exception type
            inherit_defaults: Layer custom_configs over DEFAULT_RETRY_CONFIGS
                instead of replacing them
            log_callback: Optional (log_type, message) callback for UI consumers
        """
        self.default_config = default_config or RetryConfig()
        self.custom_configs: Dict[Type[Exception], RetryConfig] = (
            dict(DEFAULT_RETRY_CONFIGS) if inherit_defaults else {}
        )
        self.custom_configs.update(custom_configs or {})
        self.log_callback = log_callback

    def get_config(self, error: Exception) -> RetryConfig:
        """Policy of the closest registered class in the error's MRO."""
        for klass in type(error).__mro__:
            config = self.custom_configs.get(klass)
            if config is not None:
                return config
        return self.default_config

    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        if config.strategy == RetryStrategy.EXPONENTIAL:
            base = config.initial_delay * config.backoff_factor ** (attempt - 1)
        elif config.strategy == RetryStrategy.LINEAR:
            base = config.initial_delay * attempt
        else:
            return 0.0

        base = min(base, config.max_delay)
        if config.jitter > 0:
            base *= 1 + config.jitter * random.random()
        return base

    def _emit(self, level: int, log_type: str, message: str) -> None:
        logger.log(level, message)
        if self.log_callback:
            self.log_callback(log_type, message)

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        operation_id: Optional[str] = None,
        on_retry: Optional[Callable[[Exception, int], None]] = None,
        **kwargs
    ) -> Any:
        """Await ``func(*args, **kwargs)``, retrying failures per policy.

        Args:
            func: Coroutine function to call
            operation_id: Name used in log messages (defaults to func.__name__)
            on_retry: Called as on_retry(error, attempt) before each new attempt

        Returns:
            Whatever func returns on its first successful call

        Raises:
            TranslationError: Unchanged, when flagged as not recoverable
            RetryExhaustedError: When the policy allows no further attempt
        """
        label = operation_id or getattr(func, '__name__', 'operation')
        attempt = 0

        while True:
            attempt += 1
            try:
                value = await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as error:
                if isinstance(error, TranslationError) and not error.recoverable:
                    self._emit(logging.ERROR, "error", f"{label}: not retrying {error}")
                    raise

                config = self.get_config(error)
                if config.strategy == RetryStrategy.NONE or attempt >= config.max_attempts:
                    self._emit(
                        logging.ERROR, "error",
                        f"{label}: giving up after {attempt} attempt(s): {error}"
                    )
                    raise RetryExhaustedError(
                        f"{label} failed after {attempt} attempt(s)",
                        original_error=error,
                        attempts=attempt
                    ) from error

                wait = self.calculate_delay(attempt, config)
                retry_after = getattr(error, 'retry_after', None)
                if retry_after:
                    wait = max(wait, min(float(retry_after), config.max_delay))

                self._emit(
                    logging.WARNING, "warning",
                    f"{label}: attempt {attempt} of {config.max_attempts} raised "
                    f"{type(error).__name__} ({error}); next try in {wait:.2f}s"
                )
                if on_retry:
                    try:
                        on_retry(error, attempt)
                    except Exception as callback_error:
                        self._emit(logging.WARNING, "warning", f"on_retry callback failed: {callback_error}")

                if wait > 0:
                    await asyncio.sleep(wait)
                continue

            if attempt > 1:
                self._emit(logging.INFO, "info", f"{label}: succeeded on attempt {attempt}")
            return value
