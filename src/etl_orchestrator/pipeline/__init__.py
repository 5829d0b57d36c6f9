"""
Pipeline Package - Object Model and Orchestration.

This package contains the execution core:
    - Orchestrator: runs a Pipeline under its error/retry policy
    - Pipeline: ordered stages plus identity and settings
    - Stage variants: ExtractStage, TransformStage, ValidateStage,
      LoadStage, CustomStage
    - PipelineContext / ContextKey: typed per-execution shared state
    - CancellationToken: cooperative cancellation signal
"""

from etl_orchestrator.pipeline.cancellation import CancellationToken
from etl_orchestrator.pipeline.context import RECORDS, ContextKey, PipelineContext
from etl_orchestrator.pipeline.orchestrator import Orchestrator
from etl_orchestrator.pipeline.pipeline import Pipeline
from etl_orchestrator.pipeline.stages import (
    CustomStage,
    ExtractStage,
    LoadStage,
    Stage,
    TransformStage,
    ValidateStage,
)

__all__ = [
    "CancellationToken",
    "ContextKey",
    "PipelineContext",
    "RECORDS",
    "Orchestrator",
    "Pipeline",
    "Stage",
    "ExtractStage",
    "TransformStage",
    "ValidateStage",
    "LoadStage",
    "CustomStage",
]
