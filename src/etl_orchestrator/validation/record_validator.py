"""
Record Validator - Declarative Per-Record Field Checks.

Validates records flowing through Validate stages:
    - Required fields present and non-empty
    - Value types (str, int, float, number, bool)
    - Numeric ranges
    - Regex patterns
    - Allowed value sets

Design Notes:
    - Validation never raises for bad data; it returns error messages
    - Errors are per record and non-fatal by default
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern

from etl_orchestrator.config.models import FieldRuleConfig
from etl_orchestrator.domain.entities import DataRecord

logger = logging.getLogger(__name__)

_TYPE_CHECKS = {
    "str": lambda v: isinstance(v, str),
    "int": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "float": lambda v: isinstance(v, float),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "bool": lambda v: isinstance(v, bool),
}


@dataclass
class FieldRule:
    """Constraints for a single field."""

    field: str
    required: bool = False
    type: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    pattern: Optional[str] = None
    allowed_values: Optional[List[Any]] = None
    _compiled: Optional[Pattern[str]] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.type is not None and self.type not in _TYPE_CHECKS:
            raise ValueError(f"Unknown field type: {self.type}")
        if self.pattern:
            self._compiled = re.compile(self.pattern)

    @classmethod
    def from_config(cls, config: FieldRuleConfig) -> "FieldRule":
        return cls(**config.model_dump())

    def check(self, record: DataRecord) -> List[str]:
        """Return error messages for this field (empty when valid)."""
        value = record.get(self.field)
        if value is None or (isinstance(value, str) and value.strip() == ""):
            if self.required:
                return [f"Field '{self.field}' is required"]
            return []

        errors: List[str] = []
        if self.type is not None and not _TYPE_CHECKS[self.type](value):
            errors.append(
                f"Field '{self.field}' expected {self.type}, got {type(value).__name__}"
            )
        if self.min_value is not None or self.max_value is not None:
            try:
                number = float(value)
            except (TypeError, ValueError):
                errors.append(f"Field '{self.field}' is not numeric: {value!r}")
            else:
                if self.min_value is not None and number < self.min_value:
                    errors.append(f"Field '{self.field}' below minimum {self.min_value}: {value}")
                if self.max_value is not None and number > self.max_value:
                    errors.append(f"Field '{self.field}' above maximum {self.max_value}: {value}")
        if self._compiled is not None and not self._compiled.search(str(value)):
            errors.append(f"Field '{self.field}' does not match pattern {self.pattern}")
        if self.allowed_values is not None and value not in self.allowed_values:
            errors.append(f"Field '{self.field}' value {value!r} not allowed")
        return errors


class RecordValidator:
    """Validates records against a list of FieldRules."""

    def __init__(self, rules: Optional[List[FieldRule]] = None) -> None:
        self.rules: List[FieldRule] = list(rules or [])

    def add_rule(self, rule: FieldRule) -> None:
        self.rules.append(rule)

    def validate(self, record: DataRecord) -> List[str]:
        """
        Validate one record.

        Args:
            record: Record to check

        Returns:
            All error messages (empty when the record is valid)
        """
        errors: List[str] = []
        for rule in self.rules:
            errors.extend(rule.check(record))
        return errors

    def summarize(self, records: List[DataRecord]) -> Dict[str, int]:
        """Count valid and invalid records."""
        invalid = sum(1 for r in records if self.validate(r))
        return {"valid": len(records) - invalid, "invalid": invalid}

    @classmethod
    def from_config(cls, rules: List[FieldRuleConfig]) -> "RecordValidator":
        return cls([FieldRule.from_config(r) for r in rules])
