"""
Console Audit Logger.

A simple audit logger that outputs to the console.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional


class ConsoleAuditLogger:
    """Simple console-based audit logger."""

    def __init__(self, verbose: bool = True) -> None:
        """
        Initialize console logger.

        Args:
            verbose: If True, log stage starts and retries. If False,
                only stage ends and errors.
        """
        self._verbose = verbose
        self._correlation_id: Optional[str] = None

    def set_correlation_id(self, correlation_id: str) -> None:
        """Set correlation ID for subsequent log entries."""
        self._correlation_id = correlation_id

    def log_stage_start(
        self,
        stage_name: str,
        stage_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self._verbose:
            self._log("INFO", f"Starting {stage_type.lower()} stage {stage_name}")

    def log_stage_end(
        self,
        stage_name: str,
        records_processed: int,
        duration_seconds: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        status = (metadata or {}).get("status", "DONE")
        self._log(
            "INFO",
            f"{status} {stage_name}: {records_processed} records ({duration_seconds:.3f}s)",
        )

    def log_error(
        self,
        source: str,
        message: str,
        severity: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._log("ERROR", f"[{severity}] {source}: {message}")

    def log_retry(
        self,
        stage_name: str,
        retry_number: int,
        delay_seconds: float,
        reason: str,
    ) -> None:
        if self._verbose:
            self._log(
                "WARN",
                f"Retry #{retry_number} of {stage_name} in {delay_seconds:.3f}s: {reason}",
            )

    def _log(self, level: str, message: str) -> None:
        """Internal logging method."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        corr_id = self._correlation_id[:8] if self._correlation_id else "--------"
        print(f"[{timestamp}] [{corr_id}] [{level:5}] {message}")
