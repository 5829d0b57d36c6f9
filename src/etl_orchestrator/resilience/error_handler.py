"""
Error Handler - Failure Classification and Retry with Backoff.

Provides:
    - Transient vs. fatal classification of stage failures
    - Async retry with exponential backoff and optional jitter
    - Cancellation-aware backoff waits

Design Notes:
    - RetryConfig.max_attempts counts retries, not invocations
    - Wait before retry k+1 (k from 0) is delay * multiplier^k, plus
      uniform jitter in [0, delay) when enabled, capped at max_delay
    - Configuration errors and cancellation are never retried
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from etl_orchestrator.config.models import RetryConfig
from etl_orchestrator.domain.exceptions import (
    CancellationRequested,
    ConfigurationError,
    EtlError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, float, BaseException], None]


class RetryExhausted(EtlError):
    """Raised when all retry attempts are exhausted."""

    default_code = "RETRY_EXHAUSTED"

    def __init__(self, message: str, attempts: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


class ErrorHandler:
    """
    Classifies failures and retries transient ones.

    Features:
        - Exception matching by class name (configurable in YAML)
        - Exponential backoff with cap and jitter
        - Injectable random source and sleep for deterministic tests
    """

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        """
        Initialize error handler.

        Args:
            retry_config: Default retry policy
            rng: Random source for jitter
            sleep: Coroutine used for backoff waits when no cancellation
                token is supplied (default: asyncio.sleep)
        """
        self.retry_config = retry_config or RetryConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def is_transient(
        self,
        error: BaseException,
        retry_config: Optional[RetryConfig] = None,
    ) -> bool:
        """Check whether an error matches the configured retryable classes."""
        if isinstance(error, (ConfigurationError, CancellationRequested, RetryExhausted)):
            return False
        config = retry_config or self.retry_config
        retryable = set(config.retryable_exceptions)
        return any(cls.__name__ in retryable for cls in type(error).__mro__)

    def calculate_delay(
        self,
        retry_number: int,
        retry_config: Optional[RetryConfig] = None,
    ) -> float:
        """
        Calculate the wait before retry number retry_number + 1.

        Args:
            retry_number: Zero-based index of the retry about to happen
            retry_config: Policy override (default: handler policy)

        Returns:
            Delay in seconds
        """
        config = retry_config or self.retry_config
        delay = config.delay_seconds * (config.backoff_multiplier ** retry_number)
        if config.jitter and config.delay_seconds > 0:
            delay += self._rng.uniform(0, config.delay_seconds)
        return min(delay, config.max_delay_seconds)

    async def retry(
        self,
        func: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        retry_config: Optional[RetryConfig] = None,
        cancellation: Optional[Any] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """
        Execute an async function, retrying transient failures.

        Args:
            func: Zero-argument coroutine factory
            operation_name: Name for logging
            retry_config: Policy override (default: handler policy)
            cancellation: Token whose sleep() interrupts backoff waits
            on_retry: Called with (retry_number, delay, error) before each wait

        Returns:
            Result of the first successful invocation

        Raises:
            RetryExhausted: When every retry failed transiently
            Exception: Any non-transient error, unchanged
        """
        config = retry_config or self.retry_config
        last_exception: Optional[BaseException] = None

        for retry_number in range(config.max_attempts + 1):
            try:
                result = await func()
                if retry_number > 0:
                    logger.info(f"{operation_name} succeeded after {retry_number} retries")
                return result

            except Exception as e:
                if not self.is_transient(e, config):
                    raise
                last_exception = e
                if retry_number >= config.max_attempts:
                    logger.error(
                        f"{operation_name} failed after {retry_number} retries: {e}"
                    )
                    break

                delay = self.calculate_delay(retry_number, config)
                logger.warning(
                    f"{operation_name} failed (retry {retry_number + 1}/{config.max_attempts}), "
                    f"retrying in {delay:.3f}s: {e}"
                )
                if on_retry is not None:
                    on_retry(retry_number, delay, e)
                if cancellation is not None:
                    await cancellation.sleep(delay)
                else:
                    await self._sleep(delay)

        raise RetryExhausted(
            f"{operation_name} failed after {config.max_attempts} retries: {last_exception}",
            attempts=config.max_attempts + 1,
            context={"operation": operation_name},
        ) from last_exception
