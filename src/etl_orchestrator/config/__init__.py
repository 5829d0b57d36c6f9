"""
Configuration Package - Models and Loaders.

This package handles all configuration aspects of the ETL orchestrator:
    - Pydantic models for type-safe configuration
    - YAML loader with validation
    - Support for configuration profiles
    - ${VAR} / ${VAR:-default} environment substitution

Configuration Structure:
    - PipelineConfig: Root of a pipeline definition
    - PipelineSettings: Error handling, retry and parallelism policy
    - StageConfig: One stage (connector, rules, mappings, validation)
    - OrchestratorConfig: Process-wide limits and timeouts

Design Principles:
    - Type-safe via Pydantic
    - Validation on load (fail fast)
"""

from etl_orchestrator.config.loader import ConfigLoader, load_config
from etl_orchestrator.config.models import (
    ActionConfig,
    ConditionConfig,
    ConnectorConfig,
    ErrorHandlingConfig,
    FieldRuleConfig,
    MappingConfig,
    NotificationConfig,
    OrchestratorConfig,
    ParallelismConfig,
    PipelineConfig,
    PipelineSettings,
    RetryConfig,
    RuleConfig,
    ScheduleConfig,
    StageConfig,
)

__all__ = [
    "ConfigLoader",
    "load_config",
    "ActionConfig",
    "ConditionConfig",
    "ConnectorConfig",
    "ErrorHandlingConfig",
    "FieldRuleConfig",
    "MappingConfig",
    "NotificationConfig",
    "OrchestratorConfig",
    "ParallelismConfig",
    "PipelineConfig",
    "PipelineSettings",
    "RetryConfig",
    "RuleConfig",
    "ScheduleConfig",
    "StageConfig",
]
