"""
Core Domain Entities.

This module defines the fundamental entities of the ETL domain: the
records flowing through a pipeline and the results an execution
produces. Records are plain dataclasses because they are mutated in
place on the hot path; results are Pydantic models.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StageType(str, Enum):
    """Kind of work a stage performs."""

    EXTRACT = "EXTRACT"
    TRANSFORM = "TRANSFORM"
    LOAD = "LOAD"
    VALIDATE = "VALIDATE"
    CUSTOM = "CUSTOM"


class StageStatus(str, Enum):
    """Per-execution state of a stage."""

    READY = "READY"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    SKIPPED = "SKIPPED"


class PipelineStatus(str, Enum):
    """Lifecycle state of a pipeline execution."""

    READY = "READY"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ErrorSeverity(str, Enum):
    """Severity attached to execution errors."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class RecordError:
    """Error captured against a single record."""

    source: str
    message: str
    error_type: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class DataRecord:
    """
    One row/event in flight.

    Field names are unique (map semantics). Rules mutate records in
    place; the mapper produces new records holding only mapped fields.
    """

    fields: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    source: Optional[str] = None
    row_number: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    errors: List[RecordError] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    modified_at: Optional[datetime] = None

    def get(self, name: str, default: Any = None) -> Any:
        """Get a field value, or default when absent."""
        return self.fields.get(name, default)

    def set(self, name: str, value: Any) -> None:
        """Set a field value."""
        self.fields[name] = value
        self.modified_at = datetime.now()

    def has(self, name: str) -> bool:
        return name in self.fields

    def remove(self, name: str) -> bool:
        """Remove a field. Returns False if it was not present."""
        if name not in self.fields:
            return False
        del self.fields[name]
        self.modified_at = datetime.now()
        return True

    def add_error(self, source: str, message: str, error_type: str) -> None:
        """Record a per-record error."""
        self.errors.append(RecordError(source=source, message=message, error_type=error_type))

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def clone(self) -> DataRecord:
        """Deep copy with the same id."""
        return DataRecord(
            fields=copy.deepcopy(self.fields),
            id=self.id,
            source=self.source,
            row_number=self.row_number,
            metadata=copy.deepcopy(self.metadata),
            errors=list(self.errors),
            created_at=self.created_at,
            modified_at=self.modified_at,
        )

    def __len__(self) -> int:
        return len(self.fields)

    def __contains__(self, name: object) -> bool:
        return name in self.fields


class ExecutionError(BaseModel):
    """Error entry accumulated during an execution."""

    source: str = Field(..., description="Stage, rule or component that failed")
    message: str
    error_code: str = "ETL_ERROR"
    error_type: Optional[str] = Field(default=None, description="Exception class name")
    severity: ErrorSeverity = ErrorSeverity.ERROR
    timestamp: datetime = Field(default_factory=datetime.now)
    record_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class ExecutionWarning(BaseModel):
    """Non-fatal issue recorded during an execution."""

    source: str
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ExecutionStatistics(BaseModel):
    """Aggregated counters for an execution."""

    total_stages: int = 0
    stages_executed: int = 0
    stages_skipped: int = 0
    stages_failed: int = 0
    total_retries: int = 0
    records_processed: int = 0
    records_successful: int = 0
    records_failed: int = 0
    stage_durations: Dict[str, float] = Field(default_factory=dict)
    custom_metrics: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Fraction of processed records that succeeded (1.0 when none)."""
        if self.records_processed == 0:
            return 1.0
        return self.records_successful / self.records_processed


class StageResult(BaseModel):
    """Outcome of a single stage within one execution."""

    stage_name: str
    stage_type: StageType = StageType.CUSTOM
    order: int = 0
    status: StageStatus = StageStatus.READY
    is_success: bool = True
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    records_processed: int = 0
    records_successful: int = 0
    records_failed: int = 0
    attempts: int = 0
    errors: List[ExecutionError] = Field(default_factory=list)
    warnings: List[ExecutionWarning] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def duration_seconds(self) -> float:
        duration = self.duration
        return duration.total_seconds() if duration is not None else 0.0


class PipelineExecutionResult(BaseModel):
    """Complete result of one pipeline execution."""

    execution_id: str
    pipeline_id: str
    pipeline_name: str = ""
    status: PipelineStatus = PipelineStatus.READY
    is_success: bool = False
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    records_processed: int = 0
    records_successful: int = 0
    records_failed: int = 0
    errors: List[ExecutionError] = Field(default_factory=list)
    warnings: List[ExecutionWarning] = Field(default_factory=list)
    statistics: ExecutionStatistics = Field(default_factory=ExecutionStatistics)
    stage_results: List[StageResult] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def get_stage_result(self, stage_name: str) -> Optional[StageResult]:
        """Look up the result of a stage by name."""
        for stage_result in self.stage_results:
            if stage_result.stage_name == stage_name:
                return stage_result
        return None
