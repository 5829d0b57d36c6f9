"""
Pipeline Builder - PipelineConfig to runnable Pipeline.

Turns a validated pipeline definition into Stage objects, resolving
connectors, custom components and transforms through a ComponentRegistry.
Rules and mappings are built from their declarative form, so a whole
pipeline can come from YAML without code.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from etl_orchestrator.config.models import PipelineConfig, StageConfig
from etl_orchestrator.domain.entities import StageType
from etl_orchestrator.domain.exceptions import ConfigurationError
from etl_orchestrator.mapping.data_mapper import DataMapper
from etl_orchestrator.pipeline.context import RECORDS, ContextKey, PipelineContext
from etl_orchestrator.pipeline.pipeline import Pipeline
from etl_orchestrator.pipeline.stages import (
    CustomStage,
    ExtractStage,
    LoadStage,
    Stage,
    StageCondition,
    TransformStage,
    ValidateStage,
)
from etl_orchestrator.registry.component_registry import ComponentRegistry
from etl_orchestrator.rules.rule_engine import Rule, RuleEngine
from etl_orchestrator.validation.record_validator import RecordValidator

logger = logging.getLogger(__name__)


def _variable_is_truthy(name: str) -> StageCondition:
    def condition(context: PipelineContext) -> bool:
        return bool(context.variables.get(name))

    return condition


class PipelineBuilder:
    """Builds Pipeline objects from PipelineConfig."""

    def __init__(self, registry: Optional[ComponentRegistry] = None) -> None:
        self.registry = registry or ComponentRegistry()

    def build(self, config: PipelineConfig) -> Pipeline:
        """
        Build a pipeline.

        Args:
            config: Validated pipeline definition

        Returns:
            Pipeline ready for Orchestrator.execute

        Raises:
            ConfigurationError: If a stage cannot be built
        """
        stages = [self.build_stage(stage_config) for stage_config in config.stages]
        pipeline = Pipeline(
            name=config.name,
            stages=stages,
            description=config.description,
            id=config.id,
            settings=config.settings,
            metadata={
                "version": config.version,
                "tags": list(config.tags),
                "schedule": config.schedule.model_dump(),
                "notifications": config.notifications.model_dump(),
            },
        )
        logger.info(f"Built pipeline '{pipeline.name}' with {len(stages)} stages")
        return pipeline

    def build_stage(self, config: StageConfig) -> Stage:
        """Build a single stage from its configuration."""
        try:
            return self._build_stage(config)
        except ConfigurationError:
            raise
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid stage '{config.name}': {e}",
                context={"stage": config.name},
                component="PipelineBuilder",
            ) from e

    def _build_stage(self, config: StageConfig) -> Stage:
        common = self._common_kwargs(config)
        input_key = self._key(config.input_key)
        output_key = self._key(config.output_key) if config.output_key else None
        transforms = self.registry.transforms

        if config.stage_type is StageType.EXTRACT:
            source = self.registry.create_source(self._require_connector(config))
            return ExtractStage(
                config.name, config.order, source, output_key=output_key or RECORDS, **common
            )

        if config.stage_type is StageType.LOAD:
            destination = self.registry.create_destination(self._require_connector(config))
            return LoadStage(config.name, config.order, destination, input_key=input_key, **common)

        if config.stage_type is StageType.VALIDATE:
            return ValidateStage(
                config.name,
                config.order,
                RecordValidator.from_config(config.validation),
                drop_invalid=config.drop_invalid,
                input_key=input_key,
                output_key=output_key,
                **common,
            )

        if config.stage_type is StageType.TRANSFORM and (config.rules or config.mappings):
            rule_engine = None
            if config.rules:
                rule_engine = RuleEngine([Rule.from_config(r, transforms) for r in config.rules])
            mapper = None
            if config.mappings:
                mapper = DataMapper.from_config(config.mappings, transforms, name=config.name)
                issues = mapper.validate()
                if issues:
                    raise ConfigurationError(
                        f"Invalid mappings in stage '{config.name}': {'; '.join(issues)}",
                        component="PipelineBuilder",
                    )
            return TransformStage(
                config.name,
                config.order,
                rule_engine=rule_engine,
                mapper=mapper,
                input_key=input_key,
                output_key=output_key,
                **common,
            )

        if not config.component:
            raise ConfigurationError(
                f"Stage '{config.name}' of type {config.stage_type.value} needs a component",
                component="PipelineBuilder",
            )
        func = self.registry.create_stage_function(config.component, config)
        return CustomStage(
            config.name, config.order, func, stage_type=config.stage_type, **common
        )

    def _common_kwargs(self, config: StageConfig) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "enabled": config.enabled,
            "parallelizable": config.parallelizable,
            "retry": config.retry,
            "timeout_seconds": config.timeout_seconds,
            "description": config.description,
        }
        if config.condition:
            kwargs["condition"] = _variable_is_truthy(config.condition)
        if config.reads:
            kwargs["reads"] = config.reads
        if config.writes:
            kwargs["writes"] = config.writes
        return kwargs

    def _key(self, name: Optional[str]) -> ContextKey[list]:
        return ContextKey.of(name, list) if name else RECORDS

    def _require_connector(self, config: StageConfig) -> Any:
        if config.connector is None:
            raise ConfigurationError(
                f"Stage '{config.name}' of type {config.stage_type.value} needs a connector",
                component="PipelineBuilder",
            )
        return config.connector
