"""
Resilience Package - Error Classification and Retry.

This package provides the resilience patterns used by the orchestrator:
    - ErrorHandler: transient/fatal classification, retry with backoff
    - RetryExhausted: raised once all retries of a transient failure fail

Design Principles:
    - Fail fast for permanent errors
    - Retry with backoff for transient errors
    - Backoff waits observe cancellation
"""

from etl_orchestrator.resilience.error_handler import ErrorHandler, RetryExhausted

__all__ = ["ErrorHandler", "RetryExhausted"]
