"""
Adapters Layer - Infrastructure Implementations.

This package contains concrete implementations of the interface protocols:
    - InMemorySourceConnector / InMemoryDestinationConnector: list-backed
      connectors
    - ConsoleAuditLogger: console-based audit logging
    - InMemoryMetricsCollector: in-memory metrics storage
    - InMemoryEventPublisher / LoggingEventPublisher: lifecycle events

Design Principles:
    - Implement protocols defined in interfaces/
    - Swappable without touching the core
"""

from etl_orchestrator.adapters.console_logger import ConsoleAuditLogger
from etl_orchestrator.adapters.event_publisher import (
    InMemoryEventPublisher,
    LoggingEventPublisher,
)
from etl_orchestrator.adapters.memory_connectors import (
    InMemoryDestinationConnector,
    InMemorySourceConnector,
)
from etl_orchestrator.adapters.metrics_collector import InMemoryMetricsCollector

__all__ = [
    "ConsoleAuditLogger",
    "InMemoryEventPublisher",
    "LoggingEventPublisher",
    "InMemorySourceConnector",
    "InMemoryDestinationConnector",
    "InMemoryMetricsCollector",
]
