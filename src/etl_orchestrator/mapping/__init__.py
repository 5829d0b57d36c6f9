"""
Mapping Package - Declarative Field Reshaping.

This package provides:
    - DataMapper: projection of records onto mapped fields
    - FieldMapping / ConstantMapping / ConditionalMapping
    - TransformRegistry: named transforms and parameterised transform
      factories for configuration
"""

from etl_orchestrator.mapping.data_mapper import (
    ConditionalMapping,
    ConstantMapping,
    DataMapper,
    FieldMapping,
    MappingStatistics,
)
from etl_orchestrator.mapping.transforms import (
    BUILTIN_FACTORIES,
    BUILTIN_TRANSFORMS,
    TransformRegistry,
)

__all__ = [
    "DataMapper",
    "FieldMapping",
    "ConstantMapping",
    "ConditionalMapping",
    "MappingStatistics",
    "TransformRegistry",
    "BUILTIN_TRANSFORMS",
    "BUILTIN_FACTORIES",
]
