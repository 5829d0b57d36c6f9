"""
Observability Package - Structured Logging and Metrics.

This package provides the structlog-based ObservabilityManager, which
can act as audit logger, metrics collector and event publisher of an
orchestrator, correlating every entry with the execution id.
"""

from etl_orchestrator.observability.observability_manager import (
    ObservabilityManager,
    get_correlation_id,
    set_correlation_id,
)

__all__ = ["ObservabilityManager", "get_correlation_id", "set_correlation_id"]
