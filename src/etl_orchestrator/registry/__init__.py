"""
Registry Module - Configuration-Driven Assembly.

This module maps configuration names to code and assembles pipelines:

Components:
    - ComponentRegistry: connector, custom stage and transform factories
    - ComponentInfo / ComponentKind: metadata about registered factories
    - PipelineBuilder: PipelineConfig -> Pipeline
"""

from etl_orchestrator.registry.component_registry import (
    ComponentInfo,
    ComponentKind,
    ComponentRegistry,
)
from etl_orchestrator.registry.pipeline_builder import PipelineBuilder

__all__ = [
    "ComponentInfo",
    "ComponentKind",
    "ComponentRegistry",
    "PipelineBuilder",
]
