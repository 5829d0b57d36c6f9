"""
Pytest Configuration and Shared Fixtures.

This module contains fixtures available to all tests.
"""

from __future__ import annotations

import random
from typing import List

import pytest

from etl_orchestrator.adapters.console_logger import ConsoleAuditLogger
from etl_orchestrator.adapters.event_publisher import InMemoryEventPublisher
from etl_orchestrator.adapters.memory_connectors import (
    InMemoryDestinationConnector,
    InMemorySourceConnector,
)
from etl_orchestrator.adapters.metrics_collector import InMemoryMetricsCollector
from etl_orchestrator.config.models import (
    ErrorHandlingConfig,
    PipelineSettings,
    RetryConfig,
)
from etl_orchestrator.domain.entities import DataRecord
from etl_orchestrator.pipeline.cancellation import CancellationToken
from etl_orchestrator.pipeline.context import PipelineContext
from etl_orchestrator.pipeline.orchestrator import Orchestrator


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure all tests are deterministic."""
    random.seed(42)
    yield


@pytest.fixture
def customer_rows() -> List[dict]:
    """Five customers, two of them Premium."""
    return [
        {"CustomerId": 1, "Name": "alice", "CustomerType": "Premium", "Total": 1200.0},
        {"CustomerId": 2, "Name": "bob", "CustomerType": "Standard", "Total": 80.0},
        {"CustomerId": 3, "Name": "carol", "CustomerType": "Premium", "Total": 430.5},
        {"CustomerId": 4, "Name": "dave", "CustomerType": "Standard", "Total": 15.0},
        {"CustomerId": 5, "Name": "erin", "CustomerType": "Trial", "Total": 0.0},
    ]


@pytest.fixture
def customer_records(customer_rows: List[dict]) -> List[DataRecord]:
    """Customer rows wrapped as DataRecords."""
    return [
        DataRecord(fields=dict(row), source="test", row_number=i)
        for i, row in enumerate(customer_rows, start=1)
    ]


@pytest.fixture
def memory_source(customer_rows: List[dict]) -> InMemorySourceConnector:
    return InMemorySourceConnector(customer_rows, name="customers")


@pytest.fixture
def memory_destination() -> InMemoryDestinationConnector:
    return InMemoryDestinationConnector(name="warehouse", batch_size=2)


@pytest.fixture
def console_logger() -> ConsoleAuditLogger:
    """Create console logger for testing."""
    return ConsoleAuditLogger(verbose=False)


@pytest.fixture
def metrics_collector() -> InMemoryMetricsCollector:
    """Create metrics collector for testing."""
    return InMemoryMetricsCollector()


@pytest.fixture
def event_publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry policy with millisecond delays."""
    return RetryConfig(max_attempts=3, delay_seconds=0.01, backoff_multiplier=2.0)


@pytest.fixture
def lenient_settings(fast_retry: RetryConfig) -> PipelineSettings:
    """Never abort: StopOnError off, unlimited errors."""
    return PipelineSettings(
        error_handling=ErrorHandlingConfig(stop_on_error=False, max_errors=None),
        retry=fast_retry,
    )


@pytest.fixture
def strict_settings(fast_retry: RetryConfig) -> PipelineSettings:
    """Abort on the first fatal stage failure."""
    return PipelineSettings(
        error_handling=ErrorHandlingConfig(stop_on_error=True),
        retry=fast_retry,
    )


@pytest.fixture
def orchestrator(
    console_logger: ConsoleAuditLogger,
    metrics_collector: InMemoryMetricsCollector,
    event_publisher: InMemoryEventPublisher,
) -> Orchestrator:
    """Orchestrator wired to in-memory observers."""
    return Orchestrator(
        audit_logger=console_logger,
        metrics_collector=metrics_collector,
        event_publisher=event_publisher,
    )


@pytest.fixture
def context() -> PipelineContext:
    return PipelineContext(pipeline_id="test-pipeline", pipeline_name="test")


@pytest.fixture
def cancellation() -> CancellationToken:
    return CancellationToken()
