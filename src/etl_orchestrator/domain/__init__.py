"""
Domain Layer - Core Entities and Errors.

This package contains the pure domain model of the ETL engine:
    - DataRecord: mutable named-field bag for one row/event
    - StageResult / PipelineExecutionResult: auditable outcomes
    - ExecutionError / ExecutionWarning / ExecutionStatistics
    - Enums: StageType, StageStatus, PipelineStatus, ErrorSeverity
    - PipelineEvent: lifecycle notification envelope
    - Exception taxonomy rooted at EtlError

Design Principles:
    - No infrastructure dependencies
    - Results are Pydantic models, records are dataclasses
"""

from etl_orchestrator.domain.entities import (
    DataRecord,
    ErrorSeverity,
    ExecutionError,
    ExecutionStatistics,
    ExecutionWarning,
    PipelineExecutionResult,
    PipelineStatus,
    RecordError,
    StageResult,
    StageStatus,
    StageType,
)
from etl_orchestrator.domain.events import EventType, PipelineEvent
from etl_orchestrator.domain.exceptions import (
    CancellationRequested,
    ConfigurationError,
    EtlError,
    ExecutionLimitExceeded,
    FatalAdapterError,
    MappingError,
    RuleActionError,
    TransientAdapterError,
    ValidationError,
)

__all__ = [
    "DataRecord",
    "RecordError",
    "ErrorSeverity",
    "ExecutionError",
    "ExecutionStatistics",
    "ExecutionWarning",
    "PipelineExecutionResult",
    "PipelineStatus",
    "StageResult",
    "StageStatus",
    "StageType",
    "EventType",
    "PipelineEvent",
    "EtlError",
    "ConfigurationError",
    "TransientAdapterError",
    "FatalAdapterError",
    "ValidationError",
    "RuleActionError",
    "MappingError",
    "CancellationRequested",
    "ExecutionLimitExceeded",
]
