"""
Orchestrator - Executes a Pipeline under an Error/Retry Policy.

The orchestrator drives one pipeline's stages against one context and
produces a PipelineExecutionResult. It owns every policy decision:
stage sequencing, skipping, retry of transient failures, abort or
demotion of fatal failures, cancellation and result aggregation.

Design Notes:
    - Stages run in ascending order; parallel waves are opt-in
    - Audit logging, metrics and events are best effort
    - No rollback: committed Load side effects belong to the adapter
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

from etl_orchestrator.config.models import (
    OrchestratorConfig,
    ParallelismConfig,
    PipelineSettings,
)
from etl_orchestrator.domain.entities import (
    ErrorSeverity,
    ExecutionError,
    PipelineExecutionResult,
    PipelineStatus,
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
)
from etl_orchestrator.interfaces.audit_logger import AuditLogger
from etl_orchestrator.interfaces.event_publisher import EventPublisher
from etl_orchestrator.interfaces.metrics_collector import MetricsCollector
from etl_orchestrator.pipeline.cancellation import CancellationToken
from etl_orchestrator.pipeline.context import PipelineContext
from etl_orchestrator.pipeline.pipeline import Pipeline
from etl_orchestrator.pipeline.stages import Stage
from etl_orchestrator.resilience.error_handler import ErrorHandler, RetryExhausted

logger = logging.getLogger(__name__)


@dataclass
class _ActiveExecution:
    pipeline: Pipeline
    context: PipelineContext
    cancellation: CancellationToken
    started_at: datetime = field(default_factory=datetime.now)


@dataclass
class _StageOutcome:
    stage: Stage
    result: StageResult
    error: Optional[BaseException] = None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, CancellationRequested)


class Orchestrator:
    """Main orchestrator for pipeline executions."""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        audit_logger: Optional[AuditLogger] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        event_publisher: Optional[EventPublisher] = None,
    ) -> None:
        """
        Initialize orchestrator with all dependencies.

        Args:
            config: Concurrency limit, event timeout and history size
            error_handler: Retry / classification policy (default handler if None)
            audit_logger: For the audit trail (optional)
            metrics_collector: For performance metrics (optional)
            event_publisher: For lifecycle notifications (optional)
        """
        self.config = config or OrchestratorConfig()
        self.error_handler = error_handler or ErrorHandler()
        self.audit_logger = audit_logger
        self.metrics_collector = metrics_collector
        self.event_publisher = event_publisher
        self._active: Dict[str, _ActiveExecution] = {}
        self._history: List[PipelineExecutionResult] = []
        self._lock = Lock()

    # =========================================================================
    # Public API
    # =========================================================================

    def create_context(self, pipeline: Pipeline) -> PipelineContext:
        """Allocate a fresh context with a new execution id and empty variables."""
        return PipelineContext(pipeline_id=pipeline.id, pipeline_name=pipeline.name)

    async def execute(
        self,
        pipeline: Pipeline,
        context: Optional[PipelineContext] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> PipelineExecutionResult:
        """
        Execute a pipeline.

        Args:
            pipeline: Pipeline to run (read only)
            context: Context to run against (created if omitted)
            cancellation: Token for cooperative cancellation (created if omitted)

        Returns:
            PipelineExecutionResult with per-stage results, errors and warnings

        Raises:
            ExecutionLimitExceeded: If max_concurrent_executions are running
        """
        context = context or self.create_context(pipeline)
        cancellation = cancellation or CancellationToken()
        self._register(pipeline, context, cancellation)

        timeout_handle = None
        if pipeline.settings.timeout_seconds:
            timeout_handle = asyncio.get_running_loop().call_later(
                pipeline.settings.timeout_seconds,
                cancellation.cancel,
                f"Pipeline timed out after {pipeline.settings.timeout_seconds}s",
            )
        try:
            return await self._run(pipeline, context, cancellation)
        finally:
            if timeout_handle is not None:
                timeout_handle.cancel()
            with self._lock:
                self._active.pop(context.execution_id, None)

    execute_pipeline = execute

    def stop_execution(self, execution_id: str, reason: str = "Stopped by request") -> bool:
        """Request cancellation of a running execution. Returns False if unknown."""
        with self._lock:
            active = self._active.get(execution_id)
        if active is None:
            return False
        active.cancellation.cancel(reason)
        logger.info(f"Stop requested for execution {execution_id}: {reason}")
        return True

    def get_execution_status(self, execution_id: str) -> Optional[PipelineStatus]:
        with self._lock:
            if execution_id in self._active:
                return PipelineStatus.RUNNING
            for result in reversed(self._history):
                if result.execution_id == execution_id:
                    return result.status
        return None

    def get_active_executions(self) -> List[Dict[str, Any]]:
        """Summaries of the executions currently running."""
        with self._lock:
            return [
                {
                    "execution_id": execution_id,
                    "pipeline_id": active.pipeline.id,
                    "pipeline_name": active.pipeline.name,
                    "started_at": active.started_at,
                }
                for execution_id, active in self._active.items()
            ]

    def get_execution_history(
        self,
        pipeline_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[PipelineExecutionResult]:
        """Finished executions, newest first."""
        with self._lock:
            results = [
                r for r in reversed(self._history)
                if pipeline_id is None or r.pipeline_id == pipeline_id
            ]
        return results[:limit]

    def clear_execution_history(self) -> None:
        with self._lock:
            self._history.clear()

    # =========================================================================
    # Execution
    # =========================================================================

    def _register(
        self,
        pipeline: Pipeline,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> None:
        with self._lock:
            if len(self._active) >= self.config.max_concurrent_executions:
                raise ExecutionLimitExceeded(
                    f"Maximum of {self.config.max_concurrent_executions} concurrent executions reached",
                    context={"pipeline_id": pipeline.id},
                    component="Orchestrator",
                )
            if context.execution_id in self._active:
                raise ValueError(f"Execution {context.execution_id} is already running")
            self._active[context.execution_id] = _ActiveExecution(pipeline, context, cancellation)

    async def _run(
        self,
        pipeline: Pipeline,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> PipelineExecutionResult:
        start = time.perf_counter()
        self._safe_call(self.audit_logger, "set_correlation_id", context.execution_id)
        result = PipelineExecutionResult(
            execution_id=context.execution_id,
            pipeline_id=pipeline.id,
            pipeline_name=pipeline.name,
            status=PipelineStatus.RUNNING,
            start_time=context.start_time,
        )

        # 1. Validate
        issues = pipeline.validate()
        if issues:
            error = ConfigurationError("; ".join(issues), component=pipeline.name)
            context.add_error(self._to_execution_error("Pipeline", error))
            self._safe_call(self.audit_logger, "log_error", "Pipeline", str(error), "CRITICAL", None)
            logger.error(f"Pipeline '{pipeline.name}' is invalid: {error}")
            return await self._finalize(result, context, start, aborted=True)

        logger.info(f"Starting pipeline '{pipeline.name}' (execution {context.execution_id})")
        await self._publish(
            EventType.PIPELINE_STARTED,
            context,
            {"stage_count": len(pipeline), "description": pipeline.description},
        )

        # 2. Stages
        settings = pipeline.settings
        aborted = cancelled = unrecovered = False
        try:
            for wave in self._plan_waves(pipeline.ordered_stages(), settings.parallelism):
                if cancellation.is_cancelled:
                    cancelled = True
                    break
                for outcome in await self._run_wave(wave, context, cancellation, settings):
                    result.stage_results.append(outcome.result)
                    if outcome.cancelled:
                        cancelled = True
                        continue
                    if outcome.result.status is StageStatus.SKIPPED:
                        if outcome.result.metadata.get("skip_reason") == "cancelled":
                            cancelled = True
                        continue
                    self._accumulate(result, outcome.result)
                    fatal = outcome.result.status is StageStatus.FAILED
                    abort_reason = self._abort_reason(context, result, settings, fatal)
                    if abort_reason:
                        aborted = True
                        logger.error(
                            f"Aborting pipeline '{pipeline.name}' after stage "
                            f"'{outcome.stage.name}': {abort_reason}"
                        )
                    elif fatal:
                        if settings.error_handling.continue_on_stage_failure:
                            self._demote(outcome, context, result)
                        else:
                            unrecovered = True
                    await self._publish_stage_completed(context, outcome.result)
                if aborted or cancelled:
                    break
        except asyncio.CancelledError:
            result.metadata["cancel_reason"] = "Task cancelled"
            await self._finalize(result, context, start, cancelled=True)
            raise

        # 3. Finalize
        if cancelled:
            result.metadata["cancel_reason"] = cancellation.reason
        return await self._finalize(
            result,
            context,
            start,
            aborted=aborted,
            cancelled=cancelled,
            unrecovered=unrecovered,
        )

    def _plan_waves(
        self,
        stages: List[Stage],
        parallelism: ParallelismConfig,
    ) -> List[List[Stage]]:
        """Group consecutive independent parallelizable stages; otherwise one stage per wave."""
        if not parallelism.enabled:
            return [[stage] for stage in stages]

        waves: List[List[Stage]] = []
        current: List[Stage] = []
        for stage in stages:
            joinable = (
                stage.parallelizable
                and current
                and all(s.parallelizable for s in current)
                and not any(stage.conflicts_with(s) for s in current)
            )
            if joinable:
                current.append(stage)
            else:
                if current:
                    waves.append(current)
                current = [stage]
        if current:
            waves.append(current)
        return waves

    async def _run_wave(
        self,
        wave: List[Stage],
        context: PipelineContext,
        cancellation: CancellationToken,
        settings: PipelineSettings,
    ) -> List[_StageOutcome]:
        if len(wave) == 1:
            return [await self._execute_stage(wave[0], context, cancellation, settings)]

        semaphore = asyncio.Semaphore(settings.parallelism.max_degree_of_parallelism)
        halted = asyncio.Event()

        async def bounded(stage: Stage) -> _StageOutcome:
            async with semaphore:
                # Stages still queued once a sibling stops the wave never start
                if cancellation.is_cancelled:
                    return self._not_started(stage, "cancelled")
                if halted.is_set():
                    return self._not_started(stage, "wave halted")
                outcome = await self._execute_stage(stage, context, cancellation, settings)
                if outcome.cancelled or (
                    outcome.result.status is StageStatus.FAILED
                    and settings.error_handling.stop_on_error
                ):
                    halted.set()
                return outcome

        logger.debug(f"Running {len(wave)} stages concurrently: {[s.name for s in wave]}")
        return list(await asyncio.gather(*(bounded(stage) for stage in wave)))

    async def _execute_stage(
        self,
        stage: Stage,
        context: PipelineContext,
        cancellation: CancellationToken,
        settings: PipelineSettings,
    ) -> _StageOutcome:
        """Run one stage with retries; never raises except for task cancellation."""
        started_at = datetime.now()

        try:
            should_run = stage.should_run(context)
        except Exception as e:
            logger.error(f"Condition of stage '{stage.name}' failed: {e}")
            return self._failed_outcome(stage, started_at, 0, e, context)

        if not should_run:
            skipped = stage.new_result()
            skipped.status = StageStatus.SKIPPED
            skipped.start_time = skipped.end_time = started_at
            logger.info(f"Skipping stage '{stage.name}'")
            return _StageOutcome(stage, skipped)

        stage_start = time.perf_counter()
        retry_config = stage.retry or settings.retry
        attempts = 0
        self._safe_call(self.audit_logger, "log_stage_start", stage.name, stage.stage_type.value, None)

        async def attempt() -> StageResult:
            nonlocal attempts
            attempts += 1
            return await self._attempt(stage, context, cancellation)

        def on_retry(retry_number: int, delay: float, error: BaseException) -> None:
            self._safe_call(
                self.audit_logger, "log_retry", stage.name, retry_number + 1, delay, str(error)
            )
            self._safe_call(
                self.metrics_collector, "record_count", "stage_retries_total", 1, {"stage": stage.name}
            )

        try:
            stage_result = await self.error_handler.retry(
                attempt,
                operation_name=f"Stage '{stage.name}'",
                retry_config=retry_config,
                cancellation=cancellation,
                on_retry=on_retry,
            )
        except CancellationRequested as e:
            cancelled = stage.new_result()
            cancelled.status = StageStatus.CANCELLED
            cancelled.is_success = False
            self._close(cancelled, started_at, attempts)
            logger.warning(f"Stage '{stage.name}' cancelled: {e}")
            return _StageOutcome(stage, cancelled, e)
        except Exception as e:
            outcome = self._failed_outcome(stage, started_at, attempts, e, context)
            self._log_stage_end(stage, outcome.result, time.perf_counter() - stage_start)
            return outcome

        if not stage_result.is_success:
            stage_result.status = StageStatus.FAILED
            if not stage_result.errors:
                stage_result.errors.append(
                    ExecutionError(
                        source=stage.name,
                        message=f"Stage '{stage.name}' reported failure",
                        error_code="STAGE_FAILED",
                        severity=ErrorSeverity.HIGH,
                    )
                )
            for error in stage_result.errors:
                context.add_error(error)
                self._safe_call(
                    self.audit_logger, "log_error", stage.name, error.message, error.severity.value, None
                )
        else:
            stage_result.status = StageStatus.COMPLETED
        self._close(stage_result, started_at, attempts)
        self._log_stage_end(stage, stage_result, time.perf_counter() - stage_start)
        return _StageOutcome(stage, stage_result)

    async def _attempt(
        self,
        stage: Stage,
        context: PipelineContext,
        cancellation: CancellationToken,
    ) -> StageResult:
        """One invocation, raced against cancellation and the stage timeout."""
        cancellation.raise_if_cancelled()
        stage_task = asyncio.ensure_future(stage.run(context, cancellation))
        cancel_task = asyncio.ensure_future(cancellation.wait())
        try:
            done, _ = await asyncio.wait(
                {stage_task, cancel_task},
                timeout=stage.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            stage_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if stage_task in done:
            return stage_task.result()

        stage_task.cancel()
        await asyncio.gather(stage_task, return_exceptions=True)
        cancellation.raise_if_cancelled()
        raise TimeoutError(f"Stage '{stage.name}' timed out after {stage.timeout_seconds}s")

    def _not_started(self, stage: Stage, reason: str) -> _StageOutcome:
        skipped = stage.new_result()
        skipped.status = StageStatus.SKIPPED
        skipped.start_time = skipped.end_time = datetime.now()
        skipped.metadata["skip_reason"] = reason
        logger.info(f"Not starting stage '{stage.name}': {reason}")
        return _StageOutcome(stage, skipped)

    def _failed_outcome(
        self,
        stage: Stage,
        started_at: datetime,
        attempts: int,
        error: BaseException,
        context: PipelineContext,
    ) -> _StageOutcome:
        failed = stage.new_result()
        failed.status = StageStatus.FAILED
        failed.is_success = False
        execution_error = self._to_execution_error(stage.name, error)
        failed.errors.append(execution_error)
        context.add_error(execution_error)
        self._close(failed, started_at, attempts)
        self._safe_call(
            self.audit_logger,
            "log_error",
            stage.name,
            execution_error.message,
            execution_error.severity.value,
            {"error_code": execution_error.error_code, "attempts": attempts},
        )
        logger.error(f"Stage '{stage.name}' failed after {attempts} attempt(s): {error}")
        return _StageOutcome(stage, failed, error)

    # =========================================================================
    # Policy
    # =========================================================================

    def _abort_reason(
        self,
        context: PipelineContext,
        result: PipelineExecutionResult,
        settings: PipelineSettings,
        fatal: bool,
    ) -> Optional[str]:
        """Evaluate StopOnError, MaxErrors and ErrorThreshold."""
        policy = settings.error_handling
        if fatal and policy.stop_on_error:
            return "stop_on_error is set"
        if policy.max_errors is not None and context.error_count > policy.max_errors:
            return f"{context.error_count} errors exceed max_errors={policy.max_errors}"
        if policy.error_threshold is not None and result.records_processed > 0:
            ratio = context.error_count / result.records_processed
            if ratio > policy.error_threshold:
                return f"error ratio {ratio:.2%} exceeds error_threshold={policy.error_threshold}"
        return None

    def _demote(
        self,
        outcome: _StageOutcome,
        context: PipelineContext,
        result: PipelineExecutionResult,
    ) -> None:
        """Turn a tolerated stage failure into a warning."""
        message = f"Stage '{outcome.stage.name}' failed; continuing: {outcome.result.errors[-1].message}"
        context.add_warning(outcome.stage.name, message)
        outcome.result.warnings.append(context.warnings[-1])
        recovered = result.statistics.custom_metrics.get("recovered_failures", 0)
        result.statistics.custom_metrics["recovered_failures"] = recovered + 1
        logger.warning(message)

    # =========================================================================
    # Aggregation
    # =========================================================================

    def _accumulate(self, result: PipelineExecutionResult, stage_result: StageResult) -> None:
        """
        Fold a stage's counters into the pipeline result.

        Records processed by the pipeline are the records extracted;
        without extract stages the busiest stage counts.
        """
        stats = result.statistics
        stats.stage_durations[stage_result.stage_name] = stage_result.duration_seconds
        stats.custom_metrics["stage_records_processed"] = (
            stats.custom_metrics.get("stage_records_processed", 0) + stage_result.records_processed
        )

        extracted = stats.custom_metrics.get("records_extracted")
        if stage_result.stage_type is StageType.EXTRACT:
            extracted = (extracted or 0) + stage_result.records_processed
            stats.custom_metrics["records_extracted"] = extracted
        if extracted is not None:
            result.records_processed = extracted
        else:
            result.records_processed = max(result.records_processed, stage_result.records_processed)

        failed = stats.custom_metrics.get("stage_records_failed", 0) + stage_result.records_failed
        stats.custom_metrics["stage_records_failed"] = failed
        result.records_failed = min(failed, result.records_processed)
        result.records_successful = result.records_processed - result.records_failed

    async def _finalize(
        self,
        result: PipelineExecutionResult,
        context: PipelineContext,
        start: float,
        aborted: bool = False,
        cancelled: bool = False,
        unrecovered: bool = False,
    ) -> PipelineExecutionResult:
        result.end_time = datetime.now()
        result.is_success = not (aborted or cancelled or unrecovered)
        if cancelled:
            result.status = PipelineStatus.CANCELLED
        elif result.is_success:
            result.status = PipelineStatus.COMPLETED
        else:
            result.status = PipelineStatus.FAILED

        stats = result.statistics
        stats.total_stages = len(result.stage_results)
        stats.stages_skipped = sum(1 for r in result.stage_results if r.status is StageStatus.SKIPPED)
        stats.stages_failed = sum(1 for r in result.stage_results if r.status is StageStatus.FAILED)
        stats.stages_executed = sum(
            1 for r in result.stage_results
            if r.status in (StageStatus.COMPLETED, StageStatus.FAILED)
        )
        stats.total_retries = sum(max(r.attempts - 1, 0) for r in result.stage_results)
        stats.records_processed = result.records_processed
        stats.records_successful = result.records_successful
        stats.records_failed = result.records_failed
        context.statistics = stats

        result.errors = list(context.errors)
        result.warnings = list(context.warnings)
        result.metadata.update(context.metadata)

        duration = time.perf_counter() - start
        self._safe_call(
            self.metrics_collector,
            "record_timing",
            "pipeline_duration_seconds",
            duration,
            {"pipeline": result.pipeline_name},
        )
        self._safe_call(
            self.metrics_collector,
            "record_count",
            "pipeline_executions_total",
            1,
            {"pipeline": result.pipeline_name, "status": result.status.value},
        )

        with self._lock:
            self._history.append(result)
            overflow = len(self._history) - self.config.history_limit
            if overflow > 0:
                del self._history[:overflow]

        logger.info(
            f"Pipeline '{result.pipeline_name}' finished with status {result.status.value} "
            f"in {duration:.3f}s ({result.records_processed} records, {len(result.errors)} errors)"
        )
        await self._publish(
            EventType.PIPELINE_COMPLETED if result.is_success else EventType.PIPELINE_FAILED,
            context,
            {
                "status": result.status.value,
                "duration_seconds": duration,
                "records_processed": result.records_processed,
                "records_failed": result.records_failed,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
            },
        )
        return result

    def _close(self, stage_result: StageResult, started_at: datetime, attempts: int) -> None:
        stage_result.start_time = started_at
        stage_result.end_time = datetime.now()
        stage_result.attempts = attempts
        stage_result.is_success = stage_result.status is StageStatus.COMPLETED

    def _to_execution_error(self, source: str, error: BaseException) -> ExecutionError:
        """Convert an exception; unknown exceptions count as FatalAdapterError."""
        cause = error.__cause__ if isinstance(error, RetryExhausted) else None
        if isinstance(error, EtlError):
            code = error.error_code
            context = dict(error.context)
        else:
            code = "FATAL_ADAPTER_ERROR"
            context = {}
        if cause is not None:
            context["cause_type"] = type(cause).__name__
        severity = (
            ErrorSeverity.CRITICAL if isinstance(error, ConfigurationError) else ErrorSeverity.HIGH
        )
        return ExecutionError(
            source=source,
            message=str(error),
            error_code=code,
            error_type=type(error).__name__,
            severity=severity,
            context=context,
        )

    # =========================================================================
    # Observers
    # =========================================================================

    def _log_stage_end(self, stage: Stage, stage_result: StageResult, duration: float) -> None:
        self._safe_call(
            self.audit_logger,
            "log_stage_end",
            stage.name,
            stage_result.records_processed,
            duration,
            {"status": stage_result.status.value, "attempts": stage_result.attempts},
        )
        tags = {"stage": stage.name, "type": stage.stage_type.value}
        self._safe_call(self.metrics_collector, "record_timing", "stage_duration_seconds", duration, tags)
        self._safe_call(
            self.metrics_collector,
            "record_count",
            "stage_records_processed",
            stage_result.records_processed,
            tags,
        )

    async def _publish_stage_completed(self, context: PipelineContext, stage_result: StageResult) -> None:
        await self._publish(
            EventType.STAGE_COMPLETED,
            context,
            {
                "stage_name": stage_result.stage_name,
                "stage_type": stage_result.stage_type.value,
                "order": stage_result.order,
                "status": stage_result.status.value,
                "duration_seconds": stage_result.duration_seconds,
                "records_processed": stage_result.records_processed,
                "records_successful": stage_result.records_successful,
                "records_failed": stage_result.records_failed,
                "attempts": stage_result.attempts,
                "warnings": [w.message for w in stage_result.warnings],
            },
        )

    async def _publish(
        self,
        event_type: EventType,
        context: PipelineContext,
        payload: Dict[str, Any],
    ) -> None:
        """Deliver an event, waiting at most event_publish_timeout_seconds."""
        if self.event_publisher is None:
            return
        event = PipelineEvent(
            event_type=event_type,
            pipeline_id=context.pipeline_id,
            execution_id=context.execution_id,
            pipeline_name=context.pipeline_name,
            payload=payload,
        )
        try:
            await asyncio.wait_for(
                self.event_publisher.publish(event),
                timeout=self.config.event_publish_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Publishing {event_type.value} timed out")
        except Exception as e:
            logger.warning(f"Publishing {event_type.value} failed: {e}")

    def _safe_call(self, target: Optional[Any], method: str, *args: Any) -> None:
        """Call an observer method; observer failures are logged only."""
        if target is None:
            return
        try:
            getattr(target, method)(*args)
        except Exception as e:
            logger.warning(f"{type(target).__name__}.{method} failed: {e}")

