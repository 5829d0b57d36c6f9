"""
Interfaces Layer - Abstract Protocols for Dependencies.

This package defines the abstract interfaces (using typing.Protocol) for all
external collaborators of the core. High-level modules depend on these
abstractions, not on concrete implementations.

Protocols:
    - SourceConnector / DestinationConnector: async record streams
    - EventPublisher: lifecycle notifications
    - AuditLogger: audit trail of stages, errors and retries
    - MetricsCollector: performance metrics

Design Principles:
    - Use typing.Protocol (not ABC) for Pythonic interfaces
    - Interface Segregation: Small, focused interfaces
"""

from etl_orchestrator.interfaces.audit_logger import AuditLogger
from etl_orchestrator.interfaces.connectors import DestinationConnector, SourceConnector
from etl_orchestrator.interfaces.event_publisher import EventPublisher
from etl_orchestrator.interfaces.metrics_collector import MetricsCollector

__all__ = [
    "AuditLogger",
    "DestinationConnector",
    "EventPublisher",
    "MetricsCollector",
    "SourceConnector",
]
