"""
Rule Engine - Ordered, Cascading Business Rules.

Rules are (predicate, action) pairs evaluated in ascending priority.
For every record, EVERY enabled rule whose predicate holds has its
action applied, so several rules may contribute to the same record and
later rules observe the writes of earlier ones.

Design Notes:
    - Ties in priority keep insertion order; duplicate names are allowed
    - A failing predicate/action is recorded on that record only
    - Two rules writing the same field: last write wins, with a warning
    - StopProcessing ends evaluation after the current rule; SkipRecord
      also drops the record from the output of process()
"""

from __future__ import annotations

import asyncio
import bisect
import inspect
import logging
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from etl_orchestrator.config.models import ActionConfig, RuleConfig
from etl_orchestrator.domain.entities import DataRecord
from etl_orchestrator.domain.exceptions import CancellationRequested, RuleActionError
from etl_orchestrator.mapping.transforms import TransformRegistry
from etl_orchestrator.rules.actions import (
    Action,
    Chain,
    CopyField,
    LogMessage,
    RemoveField,
    RuleSignal,
    SetField,
    SkipRecord,
    StopProcessing,
    TransformField,
)
from etl_orchestrator.rules.conditions import AllOf, AnyOf, Condition

logger = logging.getLogger(__name__)

Predicate = Callable[[DataRecord], Any]
RecordAction = Callable[[DataRecord], Any]
RuleErrorCallback = Callable[[DataRecord, RuleActionError], None]

# Records processed between cooperative yields to the event loop
_YIELD_EVERY = 500

_MISSING = object()

_FIELD_ACTIONS = ("set_field", "remove_field", "copy_field", "transform_field")


@dataclass(frozen=True)
class Rule:
    """A named, prioritized (predicate, action) pair."""

    name: str
    priority: int
    predicate: Predicate
    action: RecordAction
    enabled: bool = True
    description: str = ""

    @classmethod
    def from_config(
        cls,
        config: RuleConfig,
        transforms: Optional[TransformRegistry] = None,
    ) -> "Rule":
        """
        Build a rule from its declarative configuration.

        Raises:
            ValueError: If an action is missing a setting its type needs
            KeyError: If an action names an unknown transform
        """
        transforms = transforms or TransformRegistry()
        conditions = tuple(
            Condition.from_config(c.field, c.operator, c.value) for c in config.conditions
        )
        predicate = AnyOf(conditions) if config.match == "any" else AllOf(conditions)
        actions = tuple(_build_action(config.name, a, transforms) for a in config.actions)

        return cls(
            name=config.name,
            priority=config.priority,
            predicate=predicate,
            action=Chain(actions),
            enabled=config.enabled,
        )


def _build_action(rule_name: str, action: ActionConfig, transforms: TransformRegistry) -> Action:
    if action.type in _FIELD_ACTIONS and not action.field:
        raise ValueError(f"Rule '{rule_name}': {action.type} needs field")

    if action.type == "set_field":
        return SetField(action.field, action.value)
    if action.type == "remove_field":
        return RemoveField(action.field)
    if action.type == "copy_field":
        if not action.source_field:
            raise ValueError(f"Rule '{rule_name}': copy_field needs source_field")
        return CopyField(action.source_field, action.field)
    if action.type == "transform_field":
        if not action.transform:
            raise ValueError(f"Rule '{rule_name}': transform_field needs transform")
        return TransformField(action.field, transforms.create(action.transform, **action.transform_args))
    if action.type == "skip_record":
        return SkipRecord(action.message) if action.message else SkipRecord()
    if action.type == "stop_processing":
        return StopProcessing()
    if not action.message:
        raise ValueError(f"Rule '{rule_name}': log_message needs message")
    return LogMessage(action.message, action.level)


@dataclass
class RuleStatistics:
    """Counters collected by a RuleEngine, per call or over its lifetime."""

    records_processed: int = 0
    records_skipped: int = 0
    rules_evaluated: int = 0
    rules_fired: Dict[str, int] = field(default_factory=dict)
    action_errors: int = 0
    field_overwrites: int = 0

    def merge(self, other: "RuleStatistics") -> None:
        """Add another set of counters into this one."""
        self.records_processed += other.records_processed
        self.records_skipped += other.records_skipped
        self.rules_evaluated += other.rules_evaluated
        self.action_errors += other.action_errors
        self.field_overwrites += other.field_overwrites
        for name, count in other.rules_fired.items():
            self.rules_fired[name] = self.rules_fired.get(name, 0) + count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records_processed": self.records_processed,
            "records_skipped": self.records_skipped,
            "rules_evaluated": self.rules_evaluated,
            "rules_fired": dict(self.rules_fired),
            "action_errors": self.action_errors,
            "field_overwrites": self.field_overwrites,
        }


class RuleEngine:
    """
    Applies an ordered set of business rules to records.

    Usage:
        engine = RuleEngine()
        engine.add_rule(Rule("premium_discount", 1,
                             Condition("CustomerType", Operator.EQUALS, "Premium"),
                             SetField("Discount", 0.1)))
        records = await engine.process(records, cancellation)

    Statistics: every call counts into a fresh RuleStatistics which is then
    merged into the engine's lifetime totals (`get_statistics()`). Pass a
    RuleStatistics to `process`/`apply` to also receive that call's counters.
    """

    def __init__(self, rules: Optional[List[Rule]] = None) -> None:
        self._rules: List[Rule] = []
        self._lock = RLock()
        self._statistics = RuleStatistics()
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: Rule) -> None:
        """Insert a rule, keeping ascending priority; ties go after existing rules."""
        with self._lock:
            priorities = [r.priority for r in self._rules]
            index = bisect.bisect_right(priorities, rule.priority)
            self._rules.insert(index, rule)
        logger.debug(f"Added rule '{rule.name}' with priority {rule.priority}")

    def remove_rule(self, name: str) -> bool:
        """Remove every rule with the given name. Returns True if any was removed."""
        with self._lock:
            before = len(self._rules)
            self._rules = [r for r in self._rules if r.name != name]
            return len(self._rules) < before

    def clear(self) -> None:
        with self._lock:
            self._rules.clear()

    @property
    def rules(self) -> List[Rule]:
        """Snapshot of the rules in evaluation order."""
        with self._lock:
            return list(self._rules)

    def get_statistics(self) -> Dict[str, Any]:
        """Lifetime totals over every call on this engine."""
        with self._lock:
            stats = self._statistics.to_dict()
            stats["rule_count"] = len(self._rules)
        return stats

    async def process(
        self,
        records: List[DataRecord],
        cancellation: Optional[Any] = None,
        on_error: Optional[RuleErrorCallback] = None,
        statistics: Optional[RuleStatistics] = None,
    ) -> List[DataRecord]:
        """
        Apply all matching rules to every record.

        Args:
            records: Records to process (mutated in place)
            cancellation: Token checked between records
            on_error: Called for every per-record rule failure
            statistics: Receives this call's counters

        Returns:
            The processed records, in input order, without skipped records
        """
        rules = [r for r in self.rules if r.enabled]
        output: List[DataRecord] = []
        run = RuleStatistics()

        try:
            for index, record in enumerate(records):
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                record, skipped = await self._apply(record, rules, on_error, run)
                if not skipped:
                    output.append(record)
                if index % _YIELD_EVERY == _YIELD_EVERY - 1:
                    await asyncio.sleep(0)
        finally:
            self._collect(run, statistics)

        return output

    async def apply(
        self,
        record: DataRecord,
        rules: Optional[List[Rule]] = None,
        on_error: Optional[RuleErrorCallback] = None,
        statistics: Optional[RuleStatistics] = None,
    ) -> DataRecord:
        """
        Apply all matching rules to a single record.

        A record skipped by a rule is returned with metadata["skipped_by"]
        naming that rule.
        """
        if rules is None:
            rules = [r for r in self.rules if r.enabled]
        run = RuleStatistics()
        try:
            record, _ = await self._apply(record, rules, on_error, run)
        finally:
            self._collect(run, statistics)
        return record

    async def _apply(
        self,
        record: DataRecord,
        rules: List[Rule],
        on_error: Optional[RuleErrorCallback],
        stats: RuleStatistics,
    ) -> Tuple[DataRecord, bool]:
        written_by: Dict[str, str] = {}
        skipped = False

        for rule in rules:
            stats.rules_evaluated += 1
            try:
                matched = await _maybe_await(rule.predicate(record))
                if not matched:
                    continue
                before = dict(record.fields)
                result = await _maybe_await(rule.action(record))
                if isinstance(result, DataRecord):
                    record = result
            except CancellationRequested:
                raise
            except Exception as e:
                self._record_failure(record, rule, e, on_error, stats)
                continue

            stats.rules_fired[rule.name] = stats.rules_fired.get(rule.name, 0) + 1
            self._track_writes(record, rule, before, written_by, stats)

            if result is RuleSignal.SKIP:
                skipped = True
                record.metadata["skipped_by"] = rule.name
                logger.debug(f"Rule '{rule.name}' skipped record {record.id}")
                break
            if result is RuleSignal.STOP:
                logger.debug(f"Rule '{rule.name}' stopped rule processing for record {record.id}")
                break

        stats.records_processed += 1
        if skipped:
            stats.records_skipped += 1
        return record, skipped

    def _collect(self, run: RuleStatistics, statistics: Optional[RuleStatistics]) -> None:
        with self._lock:
            self._statistics.merge(run)
        if statistics is not None:
            statistics.merge(run)

    def _track_writes(
        self,
        record: DataRecord,
        rule: Rule,
        before: Dict[str, Any],
        written_by: Dict[str, str],
        stats: RuleStatistics,
    ) -> None:
        """
        Attribute the fields a rule wrote and warn when an earlier rule wrote them too.

        Writes are the fields the action declares (`fields_written`) plus any
        field whose value object changed or that disappeared.
        """
        after = record.fields
        changed = list(getattr(rule.action, "fields_written", ()))
        changed.extend(k for k, v in after.items() if before.get(k, _MISSING) is not v)
        changed.extend(k for k in before if k not in after)

        for name in dict.fromkeys(changed):
            previous = written_by.get(name)
            if previous is not None and previous != rule.name:
                stats.field_overwrites += 1
                logger.warning(
                    f"Rule '{rule.name}' overwrote field '{name}' written by rule "
                    f"'{previous}' on record {record.id}"
                )
            written_by[name] = rule.name

    def _record_failure(
        self,
        record: DataRecord,
        rule: Rule,
        error: Exception,
        on_error: Optional[RuleErrorCallback],
        stats: RuleStatistics,
    ) -> None:
        stats.action_errors += 1
        message = f"Rule '{rule.name}' failed: {error}"
        record.add_error(source=rule.name, message=message, error_type="RuleActionError")
        logger.warning(f"{message} (record {record.id})")
        if on_error is not None:
            on_error(
                record,
                RuleActionError(
                    message,
                    rule_name=rule.name,
                    context={"record_id": record.id, "exception_type": type(error).__name__},
                ),
            )


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
