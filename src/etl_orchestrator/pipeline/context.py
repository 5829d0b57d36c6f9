"""
Pipeline Context - Per-Execution Shared State.

The context is the only channel between stages. Variables are addressed
through typed ContextKey objects instead of bare strings, so two stages
cannot silently disagree about what a key holds.

Design Notes:
    - ExecutionId is fixed at construction
    - Errors and warnings are append-only
    - Not persisted; lives for the duration of one execution
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from threading import Lock
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar

from etl_orchestrator.domain.entities import (
    ExecutionError,
    ExecutionStatistics,
    ExecutionWarning,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContextKey(Generic[T]):
    """
    Typed name for a context variable.

    Keys are interned per name: requesting an existing name with a
    different value type raises TypeError.

    Example:
        >>> ORDERS = ContextKey.of("orders", list)
        >>> context.set(ORDERS, records)
        >>> context.get(ORDERS)
    """

    _registry: Dict[str, "ContextKey[Any]"] = {}
    _registry_lock = Lock()

    def __init__(self, name: str, value_type: Type[T]) -> None:
        self.name = name
        self.value_type = value_type

    @classmethod
    def of(cls, name: str, value_type: Type[Any] = object) -> "ContextKey[Any]":
        """Get or register the key for a name."""
        with cls._registry_lock:
            existing = cls._registry.get(name)
            if existing is not None:
                if existing.value_type is not value_type:
                    raise TypeError(
                        f"Context key '{name}' already registered with type "
                        f"{existing.value_type.__name__}, not {value_type.__name__}"
                    )
                return existing
            key: ContextKey[Any] = cls(name, value_type)
            cls._registry[name] = key
            return key

    def validate(self, value: Any) -> None:
        """Raise TypeError if value does not match the key's type."""
        if value is not None and self.value_type is not object and not isinstance(value, self.value_type):
            raise TypeError(
                f"Context key '{self.name}' expects {self.value_type.__name__}, "
                f"got {type(value).__name__}"
            )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContextKey):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"ContextKey({self.name!r}, {self.value_type.__name__})"


# Default hand-off key between extract, transform and load stages
RECORDS: ContextKey[list] = ContextKey.of("records", list)


class PipelineContext:
    """Shared state of one pipeline execution."""

    def __init__(
        self,
        pipeline_id: str,
        pipeline_name: str = "",
        execution_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
    ) -> None:
        """
        Initialize an empty context.

        Args:
            pipeline_id: Id of the pipeline being executed
            pipeline_name: Display name of the pipeline
            execution_id: Fixed execution id (generated if omitted)
            start_time: Execution start (now if omitted)
        """
        self._execution_id = execution_id or str(uuid.uuid4())
        self.pipeline_id = pipeline_id
        self.pipeline_name = pipeline_name
        self.start_time = start_time or datetime.now()
        self.statistics = ExecutionStatistics()
        self.metadata: Dict[str, Any] = {}
        self._variables: Dict[str, Any] = {}
        self._keys: Dict[str, ContextKey[Any]] = {}
        self._errors: List[ExecutionError] = []
        self._warnings: List[ExecutionWarning] = []

    @property
    def execution_id(self) -> str:
        return self._execution_id

    # =========================================================================
    # Variables
    # =========================================================================

    def set(self, key: ContextKey[T], value: T) -> None:
        """Store a variable, checking it against the key's type."""
        key.validate(value)
        known = self._keys.get(key.name)
        if known is not None and known.value_type is not key.value_type:
            raise TypeError(f"Context key '{key.name}' already holds {known.value_type.__name__}")
        self._keys[key.name] = key
        self._variables[key.name] = value

    def get(self, key: ContextKey[T], default: Optional[T] = None) -> Optional[T]:
        return self._variables.get(key.name, default)

    def require(self, key: ContextKey[T]) -> T:
        """
        Get a variable that must be present.

        Raises:
            KeyError: If no stage has written the key yet
        """
        if key.name not in self._variables:
            raise KeyError(f"Context variable '{key.name}' has not been set")
        return self._variables[key.name]

    def has(self, key: ContextKey[Any]) -> bool:
        return key.name in self._variables

    def remove(self, key: ContextKey[Any]) -> bool:
        """Remove a variable. Returns False if it was not set."""
        self._keys.pop(key.name, None)
        return self._variables.pop(key.name, _MISSING) is not _MISSING

    @property
    def variables(self) -> Mapping[str, Any]:
        """Read-only view of all variables by name."""
        return MappingProxyType(self._variables)

    # =========================================================================
    # Errors & warnings
    # =========================================================================

    def add_error(self, error: ExecutionError) -> None:
        """Append an error. Errors are never removed."""
        self._errors.append(error)

    def add_warning(self, source: str, message: str) -> None:
        """Append a warning."""
        self._warnings.append(ExecutionWarning(source=source, message=message))
        logger.debug(f"Warning from {source}: {message}")

    @property
    def errors(self) -> Tuple[ExecutionError, ...]:
        return tuple(self._errors)

    @property
    def warnings(self) -> Tuple[ExecutionWarning, ...]:
        return tuple(self._warnings)

    @property
    def error_count(self) -> int:
        return len(self._errors)

    @property
    def has_errors(self) -> bool:
        return len(self._errors) > 0


_MISSING = object()
