"""
Unit Tests for ObservabilityManager.

Test Aspects Covered:
    ✅ Business Logic: Correlation IDs, structured logging, metrics
    ✅ Protocols: AuditLogger, MetricsCollector, EventPublisher
"""

from __future__ import annotations

import pytest

from etl_orchestrator.domain.events import EventType, PipelineEvent
from etl_orchestrator.interfaces.audit_logger import AuditLogger
from etl_orchestrator.interfaces.event_publisher import EventPublisher
from etl_orchestrator.interfaces.metrics_collector import MetricsCollector
from etl_orchestrator.observability.observability_manager import (
    ObservabilityManager,
    get_correlation_id,
)


class TestCorrelationIds:
    """Test correlation ID management."""

    def test_set_and_get_correlation_id(self) -> None:
        """
        SCENARIO: Set correlation ID
        EXPECTED: Can retrieve same ID
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.set_correlation_id("exec-123")

        # Assert
        assert get_correlation_id() == "exec-123"

    def test_generate_correlation_id(self) -> None:
        """
        SCENARIO: Generate new correlation ID
        EXPECTED: UUID format, set in context
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        correlation_id = manager.generate_correlation_id()

        # Assert
        assert len(correlation_id) == 36  # UUID format
        assert get_correlation_id() == correlation_id


class TestEventLogging:
    """Test event logging."""

    def test_log_event_stores_event(self) -> None:
        """
        SCENARIO: Log an event
        EXPECTED: Event stored with the current correlation ID
        """
        # Arrange
        manager = ObservabilityManager()
        manager.set_correlation_id("event-123")

        # Act
        manager.log_event("test_event", {"key": "value"})

        # Assert
        events = manager.get_events()
        assert len(events) == 1
        assert events[0]["event_type"] == "test_event"
        assert events[0]["key"] == "value"
        assert events[0]["correlation_id"] == "event-123"

    def test_log_event_with_level(self) -> None:
        """
        SCENARIO: Log event with specific level
        EXPECTED: Event recorded (no exception)
        """
        # Arrange
        manager = ObservabilityManager(use_json=False)

        # Act
        manager.log_event("info_event", level="info")
        manager.log_event("warn_event", level="warning")
        manager.log_event("error_event", level="error")
        manager.log_event("debug_event", level="debug")

        # Assert
        assert len(manager.get_events()) == 4

    def test_get_events_filters_by_type(self) -> None:
        """
        SCENARIO: Several event types logged
        EXPECTED: Filter returns only the requested type
        """
        # Arrange
        manager = ObservabilityManager()
        manager.log_event("retry", {"n": 1})
        manager.log_event("error", {"n": 2})
        manager.log_event("retry", {"n": 3})

        # Act
        retries = manager.get_events("retry")

        # Assert
        assert [e["n"] for e in retries] == [1, 3]


class TestMetricsRecording:
    """Test metrics recording."""

    def test_record_metric(self) -> None:
        """
        SCENARIO: Record a metric
        EXPECTED: Metric stored and retrievable
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.record_metric("records_loaded", 42.5, tags={"env": "test"})

        # Assert
        metrics = manager.get_metrics()
        assert metrics["records_loaded"][0]["value"] == 42.5
        assert metrics["records_loaded"][0]["tags"]["env"] == "test"

    def test_record_timing(self) -> None:
        """
        SCENARIO: Record timing metric
        EXPECTED: Metric with histogram type
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.record_timing("stage_duration_seconds", 0.5, tags={"stage": "extract"})

        # Assert
        assert manager.get_metrics()["stage_duration_seconds"][0]["type"] == "histogram"

    def test_record_count(self) -> None:
        """
        SCENARIO: Record count metric
        EXPECTED: Metric with counter type and float value
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.record_count("stage_retries_total", 3)

        # Assert
        sample = manager.get_metrics()["stage_retries_total"][0]
        assert sample["type"] == "counter"
        assert sample["value"] == 3.0

    def test_record_gauge(self) -> None:
        """
        SCENARIO: Record gauge metric
        EXPECTED: Metric with gauge type
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.record_gauge("active_executions", 2)

        # Assert
        assert manager.get_metrics()["active_executions"][0]["type"] == "gauge"


class TestAuditLoggerCompatibility:
    """Test AuditLogger protocol compatibility."""

    def test_satisfies_observer_protocols(self) -> None:
        """
        SCENARIO: One manager handed to the orchestrator for all roles
        EXPECTED: It satisfies all three runtime-checkable protocols
        """
        # Arrange
        manager = ObservabilityManager()

        # Assert
        assert isinstance(manager, AuditLogger)
        assert isinstance(manager, MetricsCollector)
        assert isinstance(manager, EventPublisher)

    def test_log_stage_start(self) -> None:
        """
        SCENARIO: Log stage start
        EXPECTED: Event with stage name and type
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.log_stage_start("extract_customers", "EXTRACT")

        # Assert
        events = manager.get_events("stage_start")
        assert events[0]["stage_name"] == "extract_customers"
        assert events[0]["stage_type"] == "EXTRACT"

    def test_log_stage_end(self) -> None:
        """
        SCENARIO: Log stage end with metadata
        EXPECTED: Event with record count, duration and metadata merged in
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.log_stage_end("load_warehouse", 80, 0.5, {"status": "COMPLETED"})

        # Assert
        event = manager.get_events("stage_end")[0]
        assert event["records_processed"] == 80
        assert event["duration_seconds"] == 0.5
        assert event["status"] == "COMPLETED"

    def test_log_error_and_retry(self) -> None:
        """
        SCENARIO: Log an error and a retry
        EXPECTED: Both recorded with their details
        """
        # Arrange
        manager = ObservabilityManager()

        # Act
        manager.log_error("transform", "bad value", "HIGH", {"error_code": "X"})
        manager.log_retry("extract", 2, 0.04, "timeout")

        # Assert
        error = manager.get_events("error")[0]
        retry = manager.get_events("retry")[0]
        assert error["severity"] == "HIGH"
        assert error["error_code"] == "X"
        assert retry["retry_number"] == 2
        assert retry["reason"] == "timeout"


class TestEventPublishing:
    """Test EventPublisher protocol compatibility."""

    @pytest.mark.asyncio
    async def test_publish_logs_lifecycle_event(self) -> None:
        """
        SCENARIO: Publish a PIPELINE_COMPLETED event
        EXPECTED: Logged as lower-case event type with payload fields
        """
        # Arrange
        manager = ObservabilityManager()
        event = PipelineEvent(
            event_type=EventType.PIPELINE_COMPLETED,
            pipeline_id="p1",
            execution_id="e1",
            pipeline_name="nightly",
            payload={"records_processed": 5},
        )

        # Act
        await manager.publish(event)

        # Assert
        logged = manager.get_events("pipeline_completed")
        assert logged[0]["execution_id"] == "e1"
        assert logged[0]["records_processed"] == 5


class TestClearAndReset:
    """Test clearing state."""

    def test_clear_removes_all(self) -> None:
        """
        SCENARIO: Clear manager state
        EXPECTED: All events and metrics removed
        """
        # Arrange
        manager = ObservabilityManager()
        manager.log_event("test", {})
        manager.record_metric("test", 1.0)

        # Act
        manager.clear()

        # Assert
        assert len(manager.get_events()) == 0
        assert len(manager.get_metrics()) == 0
