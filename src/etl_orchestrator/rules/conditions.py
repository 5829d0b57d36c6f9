"""
Rule Conditions - Interpretable Record Predicates.

Conditions are small value objects that can be built from configuration
and evaluated against a DataRecord. Any plain callable taking a record
and returning a bool works wherever a condition is expected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Tuple

from etl_orchestrator.domain.entities import DataRecord

_MISSING = object()


class Operator(str, Enum):
    """Comparison operators supported by Condition."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    IS_NULL_OR_EMPTY = "is_null_or_empty"
    IS_NOT_NULL_OR_EMPTY = "is_not_null_or_empty"
    IN = "in"
    NOT_IN = "not_in"

    @classmethod
    def parse(cls, value: str) -> "Operator":
        """Parse an operator name or symbol (==, !=, >, >=, <, <=)."""
        normalized = value.strip().lower()
        if normalized in _SYMBOLS:
            return _SYMBOLS[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown condition operator: {value}") from None


_SYMBOLS: Dict[str, Operator] = {
    "==": Operator.EQUALS,
    "!=": Operator.NOT_EQUALS,
    ">": Operator.GREATER_THAN,
    ">=": Operator.GREATER_THAN_OR_EQUAL,
    "<": Operator.LESS_THAN,
    "<=": Operator.LESS_THAN_OR_EQUAL,
}


def _is_null_or_empty(value: Any) -> bool:
    if value is None or value is _MISSING:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def _compare(actual: Any, expected: Any, op: Callable[[Any, Any], bool]) -> bool:
    """Ordered comparison; mismatched types compare false."""
    try:
        return op(actual, expected)
    except TypeError:
        try:
            return op(float(actual), float(expected))
        except (TypeError, ValueError):
            return False


@dataclass(frozen=True)
class Condition:
    """Compare one record field against a literal value."""

    field: str
    operator: Operator = Operator.EQUALS
    value: Any = None

    def __call__(self, record: DataRecord) -> bool:
        actual = record.fields.get(self.field, _MISSING)
        op = self.operator

        if op is Operator.IS_NULL_OR_EMPTY:
            return _is_null_or_empty(actual)
        if op is Operator.IS_NOT_NULL_OR_EMPTY:
            return not _is_null_or_empty(actual)
        if actual is _MISSING:
            return op is Operator.NOT_EQUALS or op is Operator.NOT_IN

        if op is Operator.EQUALS:
            return actual == self.value
        if op is Operator.NOT_EQUALS:
            return actual != self.value
        if op is Operator.GREATER_THAN:
            return _compare(actual, self.value, lambda a, b: a > b)
        if op is Operator.GREATER_THAN_OR_EQUAL:
            return _compare(actual, self.value, lambda a, b: a >= b)
        if op is Operator.LESS_THAN:
            return _compare(actual, self.value, lambda a, b: a < b)
        if op is Operator.LESS_THAN_OR_EQUAL:
            return _compare(actual, self.value, lambda a, b: a <= b)
        if op is Operator.CONTAINS:
            return actual is not None and str(self.value) in str(actual)
        if op is Operator.STARTS_WITH:
            return actual is not None and str(actual).startswith(str(self.value))
        if op is Operator.ENDS_WITH:
            return actual is not None and str(actual).endswith(str(self.value))
        if op is Operator.REGEX:
            return actual is not None and re.search(str(self.value), str(actual)) is not None
        if op is Operator.IN:
            return actual in _as_collection(self.value)
        if op is Operator.NOT_IN:
            return actual not in _as_collection(self.value)
        raise ValueError(f"Unsupported operator: {op}")

    @classmethod
    def from_config(cls, field: str, operator: str, value: Any = None) -> "Condition":
        return cls(field=field, operator=Operator.parse(operator), value=value)


def _as_collection(value: Any) -> Iterable[Any]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        return value
    return (value,)


@dataclass(frozen=True)
class AllOf:
    """True when every condition is true (true when empty)."""

    conditions: Tuple[Callable[[DataRecord], bool], ...] = field(default_factory=tuple)

    def __call__(self, record: DataRecord) -> bool:
        return all(condition(record) for condition in self.conditions)


@dataclass(frozen=True)
class AnyOf:
    """True when at least one condition is true."""

    conditions: Tuple[Callable[[DataRecord], bool], ...] = field(default_factory=tuple)

    def __call__(self, record: DataRecord) -> bool:
        return any(condition(record) for condition in self.conditions)


@dataclass(frozen=True)
class Not:
    condition: Callable[[DataRecord], bool]

    def __call__(self, record: DataRecord) -> bool:
        return not self.condition(record)


def always(record: DataRecord) -> bool:
    """Predicate that matches every record."""
    return True
