"""
Configuration Models - Pydantic Models for Type-Safe Config.

All configuration is validated at load time using Pydantic.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from etl_orchestrator.domain.entities import StageType


class RetryConfig(BaseModel):
    """
    Retry policy for transient stage failures.

    max_attempts counts retries after the first invocation, so a stage
    that keeps failing is invoked max_attempts + 1 times.
    """

    max_attempts: int = Field(default=3, ge=0)
    delay_seconds: float = Field(default=5.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_seconds: float = Field(default=300.0, ge=0)
    jitter: bool = False
    retryable_exceptions: List[str] = Field(
        default_factory=lambda: [
            "TransientAdapterError",
            "TimeoutError",
            "ConnectionError",
        ]
    )


class ErrorHandlingConfig(BaseModel):
    """Abort / tolerance policy for fatal stage failures."""

    stop_on_error: bool = False
    max_errors: Optional[int] = Field(default=100, ge=0, description="None = unlimited")
    error_threshold: Optional[float] = Field(
        default=None, ge=0, description="Max errors per processed record"
    )
    continue_on_stage_failure: bool = False


class ParallelismConfig(BaseModel):
    """Bounded parallel execution of independent stages."""

    enabled: bool = False
    max_degree_of_parallelism: int = Field(default=4, ge=1)


class PipelineSettings(BaseModel):
    """Global settings of a pipeline."""

    error_handling: ErrorHandlingConfig = Field(default_factory=ErrorHandlingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    parallelism: ParallelismConfig = Field(default_factory=ParallelismConfig)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class ConnectorConfig(BaseModel):
    """The only adapter settings the core depends on."""

    connector_type: str = Field(..., alias="type")
    connection_string: str = ""
    batch_size: int = Field(default=1000, ge=1)
    settings: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ConditionConfig(BaseModel):
    """A single field comparison, e.g. CustomerType equals Premium."""

    field: str
    operator: str = "equals"
    value: Any = None


class ActionConfig(BaseModel):
    """A record mutation performed by a rule."""

    type: Literal[
        "set_field",
        "remove_field",
        "copy_field",
        "transform_field",
        "skip_record",
        "stop_processing",
        "log_message",
    ]
    field: Optional[str] = Field(default=None, description="Target field of field actions")
    value: Any = None
    source_field: Optional[str] = None
    transform: Optional[str] = None
    transform_args: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = Field(default=None, description="skip_record reason or log_message text")
    level: str = "info"


class RuleConfig(BaseModel):
    """Declarative business rule."""

    name: str
    priority: int = 0
    enabled: bool = True
    match: Literal["all", "any"] = "all"
    conditions: List[ConditionConfig] = Field(default_factory=list)
    actions: List[ActionConfig] = Field(default_factory=list)


class MappingConfig(BaseModel):
    """Declarative field mapping."""

    kind: Literal["direct", "constant", "conditional"] = "direct"
    dest_field: str
    source_field: Optional[str] = None
    transform: Optional[str] = None
    transform_args: Dict[str, Any] = Field(default_factory=dict)
    default: Any = None
    value: Any = None
    when: List[ConditionConfig] = Field(default_factory=list)


class FieldRuleConfig(BaseModel):
    """Validation rule for a single field."""

    field: str
    required: bool = False
    type: Optional[Literal["str", "int", "float", "number", "bool"]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    pattern: Optional[str] = None
    allowed_values: Optional[List[Any]] = None


class StageConfig(BaseModel):
    """Configuration of one pipeline stage."""

    name: str
    stage_type: StageType = Field(..., alias="type")
    order: int = Field(..., ge=0)
    enabled: bool = True
    description: str = ""
    connector: Optional[ConnectorConfig] = None
    component: Optional[str] = Field(
        default=None, description="Registered custom stage factory"
    )
    rules: List[RuleConfig] = Field(default_factory=list)
    mappings: List[MappingConfig] = Field(default_factory=list)
    validation: List[FieldRuleConfig] = Field(default_factory=list)
    drop_invalid: bool = False
    condition: Optional[str] = Field(
        default=None, description="Context variable that must be truthy"
    )
    input_key: Optional[str] = None
    output_key: Optional[str] = None
    reads: List[str] = Field(default_factory=list)
    writes: List[str] = Field(default_factory=list)
    parallelizable: bool = False
    retry: Optional[RetryConfig] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    settings: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ScheduleConfig(BaseModel):
    """When the pipeline should be triggered by an external scheduler."""

    enabled: bool = False
    cron: Optional[str] = None
    interval_seconds: Optional[int] = Field(default=None, ge=1)
    timezone: str = "UTC"


class NotificationConfig(BaseModel):
    """Who is notified about execution outcomes."""

    on_success: bool = False
    on_failure: bool = True
    recipients: List[str] = Field(default_factory=list)
    channels: List[str] = Field(default_factory=list)


class PipelineConfig(BaseModel):
    """Root configuration object of a pipeline definition."""

    version: str = "1.0"
    id: Optional[str] = None
    name: str
    description: str = ""
    settings: PipelineSettings = Field(default_factory=PipelineSettings)
    stages: List[StageConfig] = Field(default_factory=list)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    tags: List[str] = Field(default_factory=list)


class OrchestratorConfig(BaseModel):
    """Process-wide orchestrator settings."""

    max_concurrent_executions: int = Field(default=10, ge=1)
    event_publish_timeout_seconds: float = Field(default=5.0, gt=0)
    history_limit: int = Field(default=1000, ge=0)
