"""
Audit Logger Protocol.

Defines the abstract interface for audit logging. The audit logger
records what happened during an execution for compliance and debugging.

The audit logger is responsible for:
    - Logging stage start/end events
    - Logging every error and retry decision
    - Maintaining correlation across an execution

Design Notes:
    - Structured logging (JSON format recommended)
    - Failures inside the logger never affect pipeline outcome
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class AuditLogger(Protocol):
    """Abstract interface for audit logging."""

    def set_correlation_id(self, correlation_id: str) -> None:
        """Set correlation ID for subsequent log entries."""
        ...

    def log_stage_start(
        self,
        stage_name: str,
        stage_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log the start of a stage.

        Args:
            stage_name: Name of the stage
            stage_type: EXTRACT, TRANSFORM, LOAD, VALIDATE or CUSTOM
            metadata: Optional additional context
        """
        ...

    def log_stage_end(
        self,
        stage_name: str,
        records_processed: int,
        duration_seconds: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log the end of a stage.

        Args:
            stage_name: Name of the stage
            records_processed: Records handled by the stage
            duration_seconds: Time taken, including retries
            metadata: Optional additional context (status, attempts)
        """
        ...

    def log_error(
        self,
        source: str,
        message: str,
        severity: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log an execution error."""
        ...

    def log_retry(
        self,
        stage_name: str,
        retry_number: int,
        delay_seconds: float,
        reason: str,
    ) -> None:
        """Log a retry decision."""
        ...
