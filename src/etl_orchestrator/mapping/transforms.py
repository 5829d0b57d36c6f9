"""
Named Field Transforms.

Transforms are single-argument functions applied to a field value. The
registry lets configuration refer to them by name (e.g. "upper",
"float") so pipelines can be assembled without code.

Parameterised transforms (e.g. "multiply" by a factor, "lookup" in a
table) are registered as factories: `create(name, **args)` calls the
factory with the configured arguments and returns the transform.
Every built-in passes None through unchanged.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Any]
TransformFactory = Callable[..., Transform]


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ("true", "yes", "y", "1"):
            return True
        if normalized in ("false", "no", "n", "0", ""):
            return False
        raise ValueError(f"Cannot convert '{value}' to bool")
    return bool(value)


def _to_number(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return value
    return float(str(value).strip())


def _to_datetime(value: Any, input_format: Optional[str] = None) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        text = value.strip()
        if input_format:
            return datetime.strptime(text, input_format)
        return datetime.fromisoformat(text)
    raise ValueError(f"Cannot convert {type(value).__name__} '{value}' to datetime")


def _none_safe(func: Transform) -> Transform:
    def wrapped(value: Any) -> Any:
        return None if value is None else func(value)

    wrapped.__name__ = getattr(func, "__name__", "transform")
    return wrapped


BUILTIN_TRANSFORMS: Dict[str, Transform] = {
    "upper": _none_safe(lambda v: str(v).upper()),
    "lower": _none_safe(lambda v: str(v).lower()),
    "strip": _none_safe(lambda v: str(v).strip()),
    "title": _none_safe(lambda v: str(v).title()),
    "str": _none_safe(str),
    "int": _none_safe(int),
    "float": _none_safe(float),
    "bool": _none_safe(_to_bool),
    "abs": _none_safe(abs),
    "round2": _none_safe(lambda v: round(float(v), 2)),
}


# ============================================================================
# Factories
# ============================================================================


def regex_replace(pattern: str, replacement: str = "") -> Transform:
    """Replace every match of pattern in str(value). Groups are referenced as \\1."""
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise ValueError(f"Invalid regex pattern '{pattern}': {e}") from e
    return _none_safe(lambda v: regex.sub(replacement, str(v)))


def format_value(template: str) -> Transform:
    """Render value into a str.format template, as `{}`, `{0}` or `{value}`."""
    return _none_safe(lambda v: template.format(v, value=v))


def round_to(decimals: int = 2) -> Transform:
    return _none_safe(lambda v: round(_to_number(v), int(decimals)))


def multiply(factor: float) -> Transform:
    return _none_safe(lambda v: _to_number(v) * factor)


def add(amount: float) -> Transform:
    return _none_safe(lambda v: _to_number(v) + amount)


def date_format(format: str = "%Y-%m-%d", input_format: Optional[str] = None) -> Transform:
    """
    Render a date/datetime (or a string parsed as one) with strftime.

    Strings are parsed with input_format when given, else as ISO 8601.
    """
    return _none_safe(lambda v: _to_datetime(v, input_format).strftime(format))


def add_days(days: float) -> Transform:
    """Shift a date or datetime by a number of days. Plain dates stay dates."""

    def shift(value: Any) -> Any:
        if isinstance(value, date) and not isinstance(value, datetime):
            return value + timedelta(days=days)
        return _to_datetime(value) + timedelta(days=days)

    return _none_safe(shift)


def to_utc() -> Transform:
    """Convert to an aware UTC datetime. Naive values are taken as local time."""
    return _none_safe(lambda v: _to_datetime(v).astimezone(timezone.utc))


def date_only() -> Transform:
    """Drop the time of day."""

    def truncate(value: Any) -> date:
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        return _to_datetime(value).date()

    return _none_safe(truncate)


def lookup(
    table: Mapping[Any, Any],
    default: Any = None,
    keep_unmatched: bool = False,
) -> Transform:
    """
    Translate a value through a lookup table.

    The value is tried as-is, then as a string (configuration tables
    usually have string keys). Unmatched values map to default, or pass
    through unchanged when keep_unmatched is set.
    """
    if not isinstance(table, Mapping):
        raise ValueError(f"Lookup table must be a mapping, got {type(table).__name__}")
    entries = dict(table)

    def translate(value: Any) -> Any:
        if value in entries:
            return entries[value]
        if str(value) in entries:
            return entries[str(value)]
        return value if keep_unmatched else default

    return _none_safe(translate)


BUILTIN_FACTORIES: Dict[str, TransformFactory] = {
    "regex_replace": regex_replace,
    "format": format_value,
    "round": round_to,
    "multiply": multiply,
    "add": add,
    "date_format": date_format,
    "add_days": add_days,
    "to_utc": to_utc,
    "date_only": date_only,
    "lookup": lookup,
}


class TransformRegistry:
    """Thread-safe name -> transform lookup, seeded with the built-ins."""

    def __init__(self, include_builtins: bool = True) -> None:
        self._transforms: Dict[str, Transform] = {}
        self._factories: Dict[str, TransformFactory] = {}
        self._lock = RLock()
        if include_builtins:
            self._transforms.update(BUILTIN_TRANSFORMS)
            self._factories.update(BUILTIN_FACTORIES)

    def register(self, name: str, transform: Transform, replace: bool = False) -> None:
        """
        Register a transform under a name.

        Raises:
            ValueError: If the name is taken and replace is False
        """
        with self._lock:
            if self._is_taken(name) and not replace:
                raise ValueError(f"Transform '{name}' already registered")
            self._factories.pop(name, None)
            self._transforms[name] = transform
            logger.debug(f"Registered transform: {name}")

    def register_factory(self, name: str, factory: TransformFactory, replace: bool = False) -> None:
        """
        Register a factory building a transform from keyword arguments.

        Raises:
            ValueError: If the name is taken and replace is False
        """
        with self._lock:
            if self._is_taken(name) and not replace:
                raise ValueError(f"Transform '{name}' already registered")
            self._transforms.pop(name, None)
            self._factories[name] = factory
            logger.debug(f"Registered transform factory: {name}")

    def create(self, name: str, **args: Any) -> Transform:
        """
        Build a transform by name.

        Plain transforms take no arguments; factories are called with args.

        Raises:
            KeyError: If the name is unknown
            ValueError: If the arguments do not fit the transform
        """
        with self._lock:
            transform = self._transforms.get(name)
            factory = self._factories.get(name)
        if transform is not None:
            if args:
                raise ValueError(f"Transform '{name}' takes no arguments, got {sorted(args)}")
            return transform
        if factory is None:
            raise KeyError(f"Unknown transform: {name}")
        try:
            return factory(**args)
        except TypeError as e:
            raise ValueError(f"Invalid arguments for transform '{name}': {e}") from e

    def get(self, name: str) -> Transform:
        """
        Look up a transform; factories are built with their default arguments.

        Raises:
            KeyError: If the name is unknown
        """
        return self.create(name)

    def resolve(self, name: Optional[str], args: Optional[Dict[str, Any]] = None) -> Optional[Transform]:
        """Look up an optional transform name."""
        return self.create(name, **(args or {})) if name else None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(set(self._transforms) | set(self._factories))

    def _is_taken(self, name: str) -> bool:
        return name in self._transforms or name in self._factories
