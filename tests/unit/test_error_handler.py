"""
Unit Tests for ErrorHandler.

Test Aspects Covered:
    ✅ Business Logic: Transient classification, retry counting
    ✅ Backoff: Exponential delays, cap, jitter bounds
    ✅ Edge Cases: Non-transient errors, zero retries, cancellation
"""

from __future__ import annotations

import random
from typing import List
from unittest.mock import AsyncMock, Mock

import pytest

from etl_orchestrator.config.models import RetryConfig
from etl_orchestrator.domain.exceptions import (
    CancellationRequested,
    ConfigurationError,
    FatalAdapterError,
    TransientAdapterError,
)
from etl_orchestrator.pipeline.cancellation import CancellationToken
from etl_orchestrator.resilience.error_handler import ErrorHandler, RetryExhausted


def recording_sleep(delays: List[float]):
    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return sleep


class TestClassification:
    """Test transient vs. fatal classification."""

    def test_transient_adapter_error_is_transient(self) -> None:
        """
        SCENARIO: TransientAdapterError and builtin timeouts
        EXPECTED: Classified as transient by default
        """
        # Arrange
        handler = ErrorHandler()

        # Assert
        assert handler.is_transient(TransientAdapterError("throttled"))
        assert handler.is_transient(TimeoutError("slow"))
        assert handler.is_transient(ConnectionError("reset"))

    def test_fatal_errors_are_not_transient(self) -> None:
        """
        SCENARIO: Fatal adapter, configuration and cancellation errors
        EXPECTED: Never transient
        """
        # Arrange
        handler = ErrorHandler()

        # Assert
        assert not handler.is_transient(FatalAdapterError("bad credentials"))
        assert not handler.is_transient(ValueError("bug"))
        assert not handler.is_transient(ConfigurationError("bad"))
        assert not handler.is_transient(CancellationRequested("stop"))

    def test_subclass_matches_by_mro(self) -> None:
        """
        SCENARIO: Subclass of a retryable exception
        EXPECTED: Classified as transient
        """
        # Arrange
        class ThrottledError(TransientAdapterError):
            pass

        handler = ErrorHandler()

        # Assert
        assert handler.is_transient(ThrottledError("429"))

    def test_configuration_cannot_make_configuration_error_transient(self) -> None:
        """
        SCENARIO: ConfigurationError listed as retryable in YAML
        EXPECTED: Still never transient
        """
        # Arrange
        handler = ErrorHandler(RetryConfig(retryable_exceptions=["ConfigurationError", "EtlError"]))

        # Assert
        assert not handler.is_transient(ConfigurationError("bad"))
        assert handler.is_transient(FatalAdapterError("now retryable via EtlError"))


class TestBackoff:
    """Test delay calculation."""

    def test_exponential_delays(self) -> None:
        """
        SCENARIO: delay 0.01, multiplier 2
        EXPECTED: 0.01, 0.02, 0.04
        """
        # Arrange
        handler = ErrorHandler(RetryConfig(delay_seconds=0.01, backoff_multiplier=2.0))

        # Act
        delays = [handler.calculate_delay(k) for k in range(3)]

        # Assert
        assert delays == pytest.approx([0.01, 0.02, 0.04])

    def test_delay_capped_at_max(self) -> None:
        """
        SCENARIO: Growth beyond max_delay_seconds
        EXPECTED: Delay clamped to the cap
        """
        # Arrange
        handler = ErrorHandler(
            RetryConfig(delay_seconds=10, backoff_multiplier=3.0, max_delay_seconds=60)
        )

        # Act & Assert
        assert handler.calculate_delay(5) == 60

    def test_jitter_bounds(self) -> None:
        """
        SCENARIO: Jitter enabled
        EXPECTED: Delay within [base, base + delay) for every retry
        """
        # Arrange
        config = RetryConfig(delay_seconds=1.0, backoff_multiplier=2.0, jitter=True)
        handler = ErrorHandler(config, rng=random.Random(7))

        # Act & Assert
        for k in range(4):
            base = 2.0 ** k
            delay = handler.calculate_delay(k)
            assert base <= delay < base + 1.0


class TestRetry:
    """Test retry execution."""

    @pytest.mark.asyncio
    async def test_success_without_retry(self) -> None:
        """
        SCENARIO: Function succeeds first time
        EXPECTED: Invoked once, result returned
        """
        # Arrange
        handler = ErrorHandler()
        func = AsyncMock(return_value="ok")

        # Act
        result = await handler.retry(func)

        # Assert
        assert result == "ok"
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_max_attempts_counts_retries(self) -> None:
        """
        SCENARIO: Always transient with max_attempts=3
        EXPECTED: 4 invocations, 3 waits, RetryExhausted chained to last error
        """
        # Arrange
        delays: List[float] = []
        handler = ErrorHandler(
            RetryConfig(max_attempts=3, delay_seconds=0.01), sleep=recording_sleep(delays)
        )
        func = AsyncMock(side_effect=TransientAdapterError("timeout"))

        # Act
        with pytest.raises(RetryExhausted) as exc_info:
            await handler.retry(func, operation_name="extract")

        # Assert
        assert func.await_count == 4
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.__cause__, TransientAdapterError)
        assert delays == pytest.approx([0.01, 0.02, 0.04])

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self) -> None:
        """
        SCENARIO: Two transient failures then success
        EXPECTED: Result returned, on_retry called twice with 0-based numbers
        """
        # Arrange
        handler = ErrorHandler(RetryConfig(max_attempts=3, delay_seconds=0), sleep=AsyncMock())
        func = AsyncMock(side_effect=[TransientAdapterError("a"), TransientAdapterError("b"), 42])
        on_retry = Mock()

        # Act
        result = await handler.retry(func, on_retry=on_retry)

        # Assert
        assert result == 42
        assert [c.args[0] for c in on_retry.call_args_list] == [0, 1]

    @pytest.mark.asyncio
    async def test_non_transient_raises_immediately(self) -> None:
        """
        SCENARIO: Fatal error on first invocation
        EXPECTED: Re-raised unchanged, no retry
        """
        # Arrange
        handler = ErrorHandler(sleep=AsyncMock())
        func = AsyncMock(side_effect=FatalAdapterError("denied"))

        # Act & Assert
        with pytest.raises(FatalAdapterError):
            await handler.retry(func)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self) -> None:
        """
        SCENARIO: max_attempts=0
        EXPECTED: Single invocation, then RetryExhausted
        """
        # Arrange
        handler = ErrorHandler(RetryConfig(max_attempts=0), sleep=AsyncMock())
        func = AsyncMock(side_effect=TransientAdapterError("x"))

        # Act & Assert
        with pytest.raises(RetryExhausted):
            await handler.retry(func)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_backoff(self) -> None:
        """
        SCENARIO: Token cancelled while waiting to retry
        EXPECTED: CancellationRequested, no further invocation
        """
        # Arrange
        token = CancellationToken()
        handler = ErrorHandler(RetryConfig(max_attempts=5, delay_seconds=30))
        func = AsyncMock(side_effect=TransientAdapterError("x"))

        def cancel_on_retry(retry_number: int, delay: float, error: BaseException) -> None:
            token.cancel("operator stop")

        # Act & Assert
        with pytest.raises(CancellationRequested):
            await handler.retry(func, cancellation=token, on_retry=cancel_on_retry)
        assert func.await_count == 1
