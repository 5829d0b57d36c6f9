"""
Pipeline Stages - Polymorphic Units of Work.

Every stage exposes one capability, run(context, cancellation), and
returns a StageResult. Stages never reference each other; they hand data
on through typed context variables.

Variants:
    - ExtractStage: source connector -> context
    - TransformStage: rule engine and/or mapper over context records
    - ValidateStage: per-record validation, optionally dropping invalid
    - LoadStage: context -> destination connector
    - CustomStage: arbitrary async callable

Timing, status and attempt counts are filled in by the orchestrator.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Set,
    Union,
)

from etl_orchestrator.config.models import RetryConfig
from etl_orchestrator.domain.entities import (
    DataRecord,
    ErrorSeverity,
    ExecutionError,
    StageResult,
    StageStatus,
    StageType,
)
from etl_orchestrator.domain.exceptions import MappingError, RuleActionError
from etl_orchestrator.interfaces.connectors import DestinationConnector, SourceConnector
from etl_orchestrator.mapping.data_mapper import DataMapper, MappingStatistics
from etl_orchestrator.pipeline.cancellation import CancellationToken
from etl_orchestrator.pipeline.context import RECORDS, ContextKey, PipelineContext
from etl_orchestrator.rules.rule_engine import RuleEngine, RuleStatistics
from etl_orchestrator.validation.record_validator import RecordValidator

logger = logging.getLogger(__name__)

StageCondition = Callable[[PipelineContext], bool]
KeyLike = Union[ContextKey[Any], str]


def _key_names(keys: Iterable[KeyLike]) -> FrozenSet[str]:
    return frozenset(k.name if isinstance(k, ContextKey) else k for k in keys)


class Stage(ABC):
    """
    Base class of all stages.

    Attributes:
        name: Unique display name
        order: Position in the pipeline (unique, ascending)
        enabled: Disabled stages are reported as SKIPPED
        condition: Optional predicate over the context; False -> SKIPPED
        reads / writes: Declared context keys, used to decide which
            stages may run concurrently
        parallelizable: Opt-in to concurrent execution
        retry: Per-stage override of the pipeline retry policy
        timeout_seconds: Per-attempt timeout
    """

    stage_type: StageType = StageType.CUSTOM

    def __init__(
        self,
        name: str,
        order: int,
        enabled: bool = True,
        condition: Optional[StageCondition] = None,
        reads: Iterable[KeyLike] = (),
        writes: Iterable[KeyLike] = (),
        parallelizable: bool = False,
        retry: Optional[RetryConfig] = None,
        timeout_seconds: Optional[float] = None,
        description: str = "",
    ) -> None:
        self.name = name
        self.order = order
        self.enabled = enabled
        self.condition = condition
        self.reads = _key_names(reads)
        self.writes = _key_names(writes)
        self.parallelizable = parallelizable
        self.retry = retry
        self.timeout_seconds = timeout_seconds
        self.description = description

    def should_run(self, context: PipelineContext) -> bool:
        """Check the enabled flag and the execution condition."""
        if not self.enabled:
            return False
        if self.condition is None:
            return True
        return bool(self.condition(context))

    def conflicts_with(self, other: Stage) -> bool:
        """True when the two stages share a key that at least one writes."""
        return bool(
            self.writes & (other.reads | other.writes) or other.writes & self.reads
        )

    def new_result(self) -> StageResult:
        return StageResult(
            stage_name=self.name,
            stage_type=self.stage_type,
            order=self.order,
            status=StageStatus.RUNNING,
        )

    @abstractmethod
    async def run(
        self,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        """Execute the stage once."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, order={self.order})"


class ExtractStage(Stage):
    """Reads all records of a source into a context variable."""

    stage_type = StageType.EXTRACT

    def __init__(
        self,
        name: str,
        order: int,
        source: SourceConnector,
        output_key: ContextKey[list] = RECORDS,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("writes", [output_key])
        super().__init__(name, order, **kwargs)
        self.source = source
        self.output_key = output_key

    async def run(
        self,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        result = self.new_result()
        records: List[DataRecord] = []
        async for record in self.source.read(cancellation):
            cancellation.raise_if_cancelled()
            records.append(record)

        context.set(self.output_key, records)
        result.records_processed = len(records)
        result.records_successful = len(records)
        result.metadata["source"] = getattr(self.source, "name", type(self.source).__name__)
        logger.debug(f"{self.name}: extracted {len(records)} records")
        return result


class TransformStage(Stage):
    """Routes context records through a rule engine, then a mapper."""

    stage_type = StageType.TRANSFORM

    def __init__(
        self,
        name: str,
        order: int,
        rule_engine: Optional[RuleEngine] = None,
        mapper: Optional[DataMapper] = None,
        input_key: ContextKey[list] = RECORDS,
        output_key: Optional[ContextKey[list]] = None,
        **kwargs: Any,
    ) -> None:
        if rule_engine is None and mapper is None:
            raise ValueError(f"TransformStage '{name}' needs a rule engine or a mapper")
        output_key = output_key or input_key
        kwargs.setdefault("reads", [input_key])
        kwargs.setdefault("writes", [output_key])
        super().__init__(name, order, **kwargs)
        self.rule_engine = rule_engine
        self.mapper = mapper
        self.input_key = input_key
        self.output_key = output_key

    async def run(
        self,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        result = self.new_result()
        records: List[DataRecord] = context.require(self.input_key)
        received = len(records)
        failed_ids: Set[str] = set()

        def on_error(record: DataRecord, error: Union[RuleActionError, MappingError]) -> None:
            failed_ids.add(record.id)
            if isinstance(error, RuleActionError):
                origin = error.rule_name
            else:
                origin = error.component or "mapper"
            context.add_error(
                ExecutionError(
                    source=f"{self.name}/{origin}",
                    message=error.message,
                    error_code=error.error_code,
                    error_type=type(error).__name__,
                    severity=ErrorSeverity.MEDIUM,
                    record_id=record.id,
                    context=error.context,
                )
            )

        # Counters cover this run only; the engine and mapper keep lifetime totals
        if self.rule_engine is not None:
            rule_stats = RuleStatistics()
            records = await self.rule_engine.process(
                records, cancellation, on_error=on_error, statistics=rule_stats
            )
            result.metadata["rules"] = {
                **rule_stats.to_dict(),
                "rule_count": len(self.rule_engine.rules),
            }
            result.metadata["records_skipped"] = rule_stats.records_skipped
        if self.mapper is not None:
            mapping_stats = MappingStatistics()
            records = await self.mapper.map(
                records, cancellation, on_error=on_error, statistics=mapping_stats
            )
            result.metadata["mapping"] = {
                "mapping_count": self.mapper.mapping_count,
                **mapping_stats.to_dict(),
            }

        context.set(self.output_key, records)
        result.records_processed = received
        result.records_failed = len(failed_ids)
        result.records_successful = sum(1 for r in records if r.id not in failed_ids)
        return result


class ValidateStage(Stage):
    """Validates context records; invalid records are flagged or dropped."""

    stage_type = StageType.VALIDATE

    def __init__(
        self,
        name: str,
        order: int,
        validator: RecordValidator,
        drop_invalid: bool = False,
        input_key: ContextKey[list] = RECORDS,
        output_key: Optional[ContextKey[list]] = None,
        **kwargs: Any,
    ) -> None:
        output_key = output_key or input_key
        kwargs.setdefault("reads", [input_key])
        kwargs.setdefault("writes", [output_key])
        super().__init__(name, order, **kwargs)
        self.validator = validator
        self.drop_invalid = drop_invalid
        self.input_key = input_key
        self.output_key = output_key

    async def run(
        self,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        result = self.new_result()
        records: List[DataRecord] = context.require(self.input_key)
        kept: List[DataRecord] = []
        invalid = 0

        for record in records:
            cancellation.raise_if_cancelled()
            messages = self.validator.validate(record)
            if not messages:
                kept.append(record)
                continue
            invalid += 1
            for message in messages:
                record.add_error(source=self.name, message=message, error_type="ValidationError")
                context.add_error(
                    ExecutionError(
                        source=self.name,
                        message=message,
                        error_code="VALIDATION_ERROR",
                        error_type="ValidationError",
                        severity=ErrorSeverity.LOW,
                        record_id=record.id,
                    )
                )
            if not self.drop_invalid:
                kept.append(record)

        context.set(self.output_key, kept)
        result.records_processed = len(records)
        result.records_failed = invalid
        result.records_successful = len(records) - invalid
        result.metadata["dropped"] = len(records) - len(kept)
        return result


class LoadStage(Stage):
    """Writes context records to a destination connector."""

    stage_type = StageType.LOAD

    def __init__(
        self,
        name: str,
        order: int,
        destination: DestinationConnector,
        input_key: ContextKey[list] = RECORDS,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("reads", [input_key])
        super().__init__(name, order, **kwargs)
        self.destination = destination
        self.input_key = input_key

    async def run(
        self,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        result = self.new_result()
        records: List[DataRecord] = context.require(self.input_key)

        async def stream() -> AsyncIterator[DataRecord]:
            for record in records:
                cancellation.raise_if_cancelled()
                yield record

        written = await self.destination.write(stream(), cancellation)
        result.records_processed = written
        result.records_successful = written
        result.records_failed = max(len(records) - written, 0)
        result.metadata["destination"] = getattr(
            self.destination, "name", type(self.destination).__name__
        )
        return result


CustomStageFunc = Callable[
    [PipelineContext, CancellationToken],
    Awaitable[Union[StageResult, int, None]],
]


class CustomStage(Stage):
    """
    Wraps an async callable.

    The callable may return a StageResult, a processed-record count, or
    None.
    """

    def __init__(
        self,
        name: str,
        order: int,
        func: CustomStageFunc,
        stage_type: StageType = StageType.CUSTOM,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, order, **kwargs)
        self.func = func
        self.stage_type = stage_type

    async def run(
        self,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        outcome = await self.func(context, cancellation)
        if isinstance(outcome, StageResult):
            return outcome
        result = self.new_result()
        if isinstance(outcome, int):
            result.records_processed = outcome
            result.records_successful = outcome
        return result
