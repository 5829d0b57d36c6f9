"""
Domain Exceptions - Error Taxonomy of the ETL Engine.

Every error raised by the engine or by adapters derives from EtlError,
which carries a stable error code and a free-form context dict.

Classification used by the orchestrator:
    - ConfigurationError: fatal, detected before any stage runs
    - TransientAdapterError: retryable (timeouts, throttling, ...)
    - FatalAdapterError: non-retryable adapter failure
    - ValidationError / RuleActionError / MappingError: per-record
    - CancellationRequested: cooperative abort
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EtlError(Exception):
    """Base class for all engine errors."""

    default_code = "ETL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        component: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context or {}
        self.component = component

    def __str__(self) -> str:
        if self.component:
            return f"[{self.component}] {self.message}"
        return self.message


class ConfigurationError(EtlError):
    """Pipeline definition is invalid. Never retried."""

    default_code = "CONFIGURATION_ERROR"


class TransientAdapterError(EtlError):
    """Adapter failure expected to succeed on retry."""

    default_code = "TRANSIENT_ADAPTER_ERROR"


class FatalAdapterError(EtlError):
    """Adapter failure that must not be retried."""

    default_code = "FATAL_ADAPTER_ERROR"


class ValidationError(EtlError):
    """A single record failed validation."""

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.field = field
        self.record_id = record_id


class RuleActionError(EtlError):
    """A rule predicate or action raised for one record."""

    default_code = "RULE_ACTION_ERROR"

    def __init__(self, message: str, rule_name: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.rule_name = rule_name


class MappingError(EtlError):
    """A field transform or conditional mapping raised for one record."""

    default_code = "MAPPING_ERROR"

    def __init__(self, message: str, dest_field: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.dest_field = dest_field


class CancellationRequested(EtlError):
    """Raised at a suspension point once cancellation was requested."""

    default_code = "CANCELLED"


class ExecutionLimitExceeded(EtlError):
    """Raised when the concurrent execution limit is reached."""

    default_code = "EXECUTION_LIMIT_EXCEEDED"
