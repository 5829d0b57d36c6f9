"""
Rule Actions - Interpretable Record Mutations.

Actions mutate a record in place. Like conditions, any callable taking a
record works as an action; these value objects exist so rules can be
built from configuration.

Field actions declare the fields they write through `fields_written`, so
the engine can attribute writes even when a value is mutated in place or
rewritten with the very same object. Flow actions return a RuleSignal
telling the engine to stop evaluating rules or to skip the record.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional, Tuple

from etl_orchestrator.domain.entities import DataRecord

logger = logging.getLogger(__name__)

Action = Callable[[DataRecord], Any]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class RuleSignal(IntEnum):
    """Flow control returned by an action. Higher values win inside a Chain."""

    STOP = 1
    SKIP = 2


@dataclass(frozen=True)
class SetField:
    """Set a field to a literal value."""

    field: str
    value: Any

    @property
    def fields_written(self) -> Tuple[str, ...]:
        return (self.field,)

    def __call__(self, record: DataRecord) -> None:
        record.set(self.field, self.value)


@dataclass(frozen=True)
class RemoveField:
    field: str

    @property
    def fields_written(self) -> Tuple[str, ...]:
        return (self.field,)

    def __call__(self, record: DataRecord) -> None:
        record.remove(self.field)


@dataclass(frozen=True)
class CopyField:
    """Copy source_field into field. Missing source copies None."""

    source_field: str
    field: str

    @property
    def fields_written(self) -> Tuple[str, ...]:
        return (self.field,)

    def __call__(self, record: DataRecord) -> None:
        record.set(self.field, record.get(self.source_field))


@dataclass(frozen=True)
class TransformField:
    """Replace a field with transform(value); a missing field is left alone."""

    field: str
    transform: Callable[[Any], Any]

    @property
    def fields_written(self) -> Tuple[str, ...]:
        return (self.field,)

    def __call__(self, record: DataRecord) -> None:
        if record.has(self.field):
            record.set(self.field, self.transform(record.get(self.field)))


@dataclass(frozen=True)
class ComputeField:
    """Set a field from a function of the whole record."""

    field: str
    compute: Callable[[DataRecord], Any]

    @property
    def fields_written(self) -> Tuple[str, ...]:
        return (self.field,)

    def __call__(self, record: DataRecord) -> None:
        record.set(self.field, self.compute(record))


@dataclass(frozen=True)
class SkipRecord:
    """Drop the record from the rule engine output."""

    reason: str = "Record skipped by rule"

    def __call__(self, record: DataRecord) -> RuleSignal:
        record.metadata["skip_reason"] = self.reason
        return RuleSignal.SKIP


@dataclass(frozen=True)
class StopProcessing:
    """Evaluate no further rules for this record once the current rule completes."""

    def __call__(self, record: DataRecord) -> RuleSignal:
        return RuleSignal.STOP


@dataclass(frozen=True)
class LogMessage:
    """
    Log a message about the record.

    `{Field}` placeholders are replaced with the record's field values;
    placeholders naming absent fields are left as written.
    """

    message: str
    level: str = "info"

    def __call__(self, record: DataRecord) -> None:
        def substitute(match: re.Match) -> str:
            name = match.group(1)
            return str(record.get(name)) if record.has(name) else match.group(0)

        level = logging.getLevelName(self.level.upper())
        if not isinstance(level, int):
            level = logging.INFO
        logger.log(level, _PLACEHOLDER.sub(substitute, self.message))


@dataclass(frozen=True)
class Chain:
    """Apply several actions in order. Returns the strongest signal raised."""

    actions: Tuple[Action, ...]

    @property
    def fields_written(self) -> Tuple[str, ...]:
        written: Tuple[str, ...] = ()
        for action in self.actions:
            written += tuple(getattr(action, "fields_written", ()))
        return written

    def __call__(self, record: DataRecord) -> Optional[RuleSignal]:
        signal: Optional[RuleSignal] = None
        for action in self.actions:
            result = action(record)
            if isinstance(result, RuleSignal) and (signal is None or result > signal):
                signal = result
        return signal
