"""
Observability Manager - Structured Logging, Metrics and Events.

Provides:
    - Structured JSON logging via structlog
    - Execution-id correlation via contextvars
    - In-memory metric and event capture

Design Notes:
    - Implements the AuditLogger, MetricsCollector and EventPublisher
      protocols, so one instance can be handed to the orchestrator for
      all three roles
    - Thread-safe event/metric storage
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from etl_orchestrator.domain.events import PipelineEvent

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context."""
    _correlation_id.set(correlation_id)


class ObservabilityManager:
    """
    Unified observability: logging, metrics, and events.

    Provides structured logging with correlation IDs and metrics recording.
    """

    def __init__(
        self,
        service_name: str = "etl_orchestrator",
        use_json: bool = True,
        log_level: int = logging.INFO,
    ) -> None:
        """
        Initialize observability manager.

        Args:
            service_name: Service name for log entries
            use_json: JSON output (otherwise structlog's console renderer)
            log_level: Logging level
        """
        self.service_name = service_name
        self.use_json = use_json
        self.log_level = log_level
        self._metrics: Dict[str, List[Dict[str, Any]]] = {}
        self._events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

        self._configure_structlog()
        self._logger = structlog.get_logger(service_name)

    def _configure_structlog(self) -> None:
        """Configure structlog for structured logging."""
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
        ]

        if self.use_json:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(self.log_level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )

    def set_correlation_id(self, correlation_id: str) -> None:
        """
        Set correlation ID (the execution id) for current context.

        Args:
            correlation_id: Unique ID for request tracing
        """
        set_correlation_id(correlation_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    def generate_correlation_id(self) -> str:
        """Generate and set a new correlation ID."""
        correlation_id = str(uuid.uuid4())
        self.set_correlation_id(correlation_id)
        return correlation_id

    def log_event(
        self,
        event_type: str,
        data: Optional[Dict[str, Any]] = None,
        level: str = "info",
    ) -> None:
        """
        Log a structured event.

        Args:
            event_type: Type of event (e.g., "stage_start", "retry")
            data: Additional event data
            level: Log level (debug, info, warning, error)
        """
        event_data = {
            "event_type": event_type,
            "timestamp": datetime.now().isoformat(),
            "correlation_id": get_correlation_id(),
            **(data or {}),
        }

        with self._lock:
            self._events.append(event_data)

        log_method = getattr(self._logger, level.lower(), self._logger.info)
        log_method(event_type, **{k: v for k, v in event_data.items() if k != "event_type"})

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        metric_type: str = "gauge",
    ) -> None:
        """
        Record a metric value.

        Args:
            name: Metric name
            value: Metric value
            tags: Additional tags/labels
            metric_type: Type (gauge, counter, histogram)
        """
        metric_entry = {
            "timestamp": datetime.now().isoformat(),
            "value": value,
            "tags": tags or {},
            "type": metric_type,
            "correlation_id": get_correlation_id(),
        }

        with self._lock:
            self._metrics.setdefault(name, []).append(metric_entry)

    def get_metrics(self) -> Dict[str, List[Dict[str, Any]]]:
        """Get all recorded metrics."""
        with self._lock:
            return dict(self._metrics)

    def get_events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recorded events, optionally of one type."""
        with self._lock:
            if event_type is None:
                return list(self._events)
            return [e for e in self._events if e["event_type"] == event_type]

    def clear(self) -> None:
        """Clear all recorded metrics and events."""
        with self._lock:
            self._metrics.clear()
            self._events.clear()

    # =========================================================================
    # AuditLogger Protocol Compatibility
    # =========================================================================

    def log_stage_start(
        self,
        stage_name: str,
        stage_type: str,
        metadata: Optional[Dict] = None,
    ) -> None:
        self.log_event(
            "stage_start",
            {"stage_name": stage_name, "stage_type": stage_type, **(metadata or {})},
        )

    def log_stage_end(
        self,
        stage_name: str,
        records_processed: int,
        duration_seconds: float,
        metadata: Optional[Dict] = None,
    ) -> None:
        self.log_event(
            "stage_end",
            {
                "stage_name": stage_name,
                "records_processed": records_processed,
                "duration_seconds": duration_seconds,
                **(metadata or {}),
            },
        )

    def log_error(
        self,
        source: str,
        message: str,
        severity: str,
        context: Optional[Dict] = None,
    ) -> None:
        self.log_event(
            "error",
            {"source": source, "message": message, "severity": severity, **(context or {})},
            level="error",
        )

    def log_retry(
        self,
        stage_name: str,
        retry_number: int,
        delay_seconds: float,
        reason: str,
    ) -> None:
        self.log_event(
            "retry",
            {
                "stage_name": stage_name,
                "retry_number": retry_number,
                "delay_seconds": delay_seconds,
                "reason": reason,
            },
            level="warning",
        )

    # =========================================================================
    # MetricsCollector Protocol Compatibility
    # =========================================================================

    def record_timing(
        self,
        name: str,
        duration_seconds: float,
        tags: Optional[Dict] = None,
    ) -> None:
        self.record_metric(name, duration_seconds, tags, metric_type="histogram")

    def record_count(
        self,
        name: str,
        value: int,
        tags: Optional[Dict] = None,
    ) -> None:
        self.record_metric(name, float(value), tags, metric_type="counter")

    def record_gauge(
        self,
        name: str,
        value: float,
        tags: Optional[Dict] = None,
    ) -> None:
        self.record_metric(name, value, tags, metric_type="gauge")

    # =========================================================================
    # EventPublisher Protocol Compatibility
    # =========================================================================

    async def publish(self, event: PipelineEvent) -> None:
        """Log a lifecycle event."""
        self.log_event(
            event.event_type.value.lower(),
            {
                "pipeline_id": event.pipeline_id,
                "execution_id": event.execution_id,
                "pipeline_name": event.pipeline_name,
                **event.payload,
            },
        )
