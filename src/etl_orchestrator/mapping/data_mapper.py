"""
Data Mapper - Declarative Field Projection.

The mapper reshapes records: it renames fields (optionally transforming
their values), injects constants, and injects values computed from the
whole record. Mapping is a projection, not a merge: output records hold
only the fields that were explicitly mapped.

Application order per record:
    1. Direct mappings, in declaration order
    2. Constant mappings, in declaration order
    3. Conditional mappings, in declaration order; each one sees the
       source fields overlaid with everything mapped so far

Error policy:
    A transform or conditional that raises leaves the destination field
    at its default, records a MappingError on the output record and sets
    metadata["mapping_failed"]. The record is kept so record counts stay
    auditable.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from etl_orchestrator.config.models import MappingConfig
from etl_orchestrator.domain.entities import DataRecord
from etl_orchestrator.domain.exceptions import CancellationRequested, MappingError
from etl_orchestrator.mapping.transforms import TransformRegistry
from etl_orchestrator.rules.conditions import AllOf, Condition

logger = logging.getLogger(__name__)

MappingErrorCallback = Callable[[DataRecord, MappingError], None]

_YIELD_EVERY = 500


@dataclass(frozen=True)
class FieldMapping:
    """Copy source_field to dest_field, optionally through a transform."""

    source_field: str
    dest_field: str
    transform: Optional[Callable[[Any], Any]] = None
    default: Any = None


@dataclass(frozen=True)
class ConstantMapping:
    dest_field: str
    value: Any


@dataclass(frozen=True)
class ConditionalMapping:
    """Set dest_field to fn(working_record)."""

    dest_field: str
    fn: Callable[[DataRecord], Any]
    default: Any = None


@dataclass
class MappingStatistics:
    """Counters collected by a DataMapper, per call or over its lifetime."""

    records_mapped: int = 0
    mapping_errors: int = 0
    records_flagged: int = 0

    def merge(self, other: "MappingStatistics") -> None:
        self.records_mapped += other.records_mapped
        self.mapping_errors += other.mapping_errors
        self.records_flagged += other.records_flagged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records_mapped": self.records_mapped,
            "mapping_errors": self.mapping_errors,
            "records_flagged": self.records_flagged,
        }


class DataMapper:
    """
    Field-level reshaping of records.

    Usage:
        mapper = DataMapper()
        mapper.add_mapping("cust_name", "CustomerName", str.upper)
        mapper.add_constant_mapping("Source", "crm")
        mapper.add_conditional_mapping(
            "Tier", lambda r: "gold" if r.get("Total", 0) > 1000 else "standard"
        )
        mapped = await mapper.map(records, cancellation)
    """

    def __init__(self, name: str = "mapper") -> None:
        self.name = name
        self._mappings: List[FieldMapping] = []
        self._constants: List[ConstantMapping] = []
        self._conditionals: List[ConditionalMapping] = []
        self._lock = RLock()
        self._statistics = MappingStatistics()

    # =========================================================================
    # Registration
    # =========================================================================

    def add_mapping(
        self,
        source_field: str,
        dest_field: str,
        transform: Optional[Callable[[Any], Any]] = None,
        default: Any = None,
    ) -> None:
        """
        Add a direct mapping.

        Raises:
            ValueError: If source_field is already mapped
        """
        with self._lock:
            if any(m.source_field == source_field for m in self._mappings):
                raise ValueError(f"Source field '{source_field}' is already mapped")
            self._mappings.append(FieldMapping(source_field, dest_field, transform, default))

    def add_constant_mapping(self, dest_field: str, value: Any) -> None:
        with self._lock:
            self._constants.append(ConstantMapping(dest_field, value))

    def add_conditional_mapping(
        self,
        dest_field: str,
        fn: Callable[[DataRecord], Any],
        default: Any = None,
    ) -> None:
        """Add a mapping whose value is computed from the working record."""
        with self._lock:
            self._conditionals.append(ConditionalMapping(dest_field, fn, default))

    def remove_mapping(self, dest_field: str) -> bool:
        """Remove every mapping targeting dest_field. Returns True if any was removed."""
        with self._lock:
            before = self.mapping_count
            self._mappings = [m for m in self._mappings if m.dest_field != dest_field]
            self._constants = [m for m in self._constants if m.dest_field != dest_field]
            self._conditionals = [m for m in self._conditionals if m.dest_field != dest_field]
            return self.mapping_count < before

    def clear(self) -> None:
        with self._lock:
            self._mappings.clear()
            self._constants.clear()
            self._conditionals.clear()

    @property
    def mapping_count(self) -> int:
        return len(self._mappings) + len(self._constants) + len(self._conditionals)

    @property
    def dest_fields(self) -> List[str]:
        """All destination fields in application order."""
        with self._lock:
            return (
                [m.dest_field for m in self._mappings]
                + [m.dest_field for m in self._constants]
                + [m.dest_field for m in self._conditionals]
            )

    def validate(self) -> List[str]:
        """
        Check the mapping set for problems.

        Returns:
            Human-readable issues (empty when valid)
        """
        issues: List[str] = []
        if self.mapping_count == 0:
            issues.append(f"Mapper '{self.name}' has no mappings")
        for dest, count in Counter(self.dest_fields).items():
            if count > 1:
                issues.append(f"Destination field '{dest}' is mapped {count} times")
        return issues

    def get_statistics(self) -> Dict[str, Any]:
        """Mapping counts plus lifetime totals over every call on this mapper."""
        with self._lock:
            return {
                "direct_mappings": len(self._mappings),
                "constant_mappings": len(self._constants),
                "conditional_mappings": len(self._conditionals),
                **self._statistics.to_dict(),
            }

    # =========================================================================
    # Mapping
    # =========================================================================

    async def map(
        self,
        records: List[DataRecord],
        cancellation: Optional[Any] = None,
        on_error: Optional[MappingErrorCallback] = None,
        statistics: Optional[MappingStatistics] = None,
    ) -> List[DataRecord]:
        """
        Project every record through the mapping set.

        Args:
            records: Source records (left untouched)
            cancellation: Token checked between records
            on_error: Called for every per-record mapping failure
            statistics: Receives this call's counters

        Returns:
            New records holding only mapped fields, in input order
        """
        with self._lock:
            mappings = list(self._mappings)
            constants = list(self._constants)
            conditionals = list(self._conditionals)

        output: List[DataRecord] = []
        run = MappingStatistics()
        try:
            for index, record in enumerate(records):
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                output.append(
                    await self._map_one(record, mappings, constants, conditionals, on_error, run)
                )
                if index % _YIELD_EVERY == _YIELD_EVERY - 1:
                    await asyncio.sleep(0)
        finally:
            self._collect(run, statistics)
        return output

    async def map_record(
        self,
        record: DataRecord,
        on_error: Optional[MappingErrorCallback] = None,
        statistics: Optional[MappingStatistics] = None,
    ) -> DataRecord:
        """Project a single record."""
        with self._lock:
            mappings = list(self._mappings)
            constants = list(self._constants)
            conditionals = list(self._conditionals)
        run = MappingStatistics()
        try:
            return await self._map_one(record, mappings, constants, conditionals, on_error, run)
        finally:
            self._collect(run, statistics)

    def _collect(self, run: MappingStatistics, statistics: Optional[MappingStatistics]) -> None:
        with self._lock:
            self._statistics.merge(run)
        if statistics is not None:
            statistics.merge(run)

    async def _map_one(
        self,
        record: DataRecord,
        mappings: List[FieldMapping],
        constants: List[ConstantMapping],
        conditionals: List[ConditionalMapping],
        on_error: Optional[MappingErrorCallback],
        stats: MappingStatistics,
    ) -> DataRecord:
        out: Dict[str, Any] = {}
        failures: List[MappingError] = []

        for mapping in mappings:
            if mapping.source_field not in record.fields:
                out[mapping.dest_field] = mapping.default
                continue
            value = record.fields[mapping.source_field]
            if mapping.transform is None:
                out[mapping.dest_field] = value
                continue
            try:
                out[mapping.dest_field] = await _maybe_await(mapping.transform(value))
            except CancellationRequested:
                raise
            except Exception as e:
                out[mapping.dest_field] = mapping.default
                failures.append(self._failure(record, mapping.dest_field, e, stats))

        for constant in constants:
            out[constant.dest_field] = constant.value

        for conditional in conditionals:
            working = DataRecord(
                fields={**record.fields, **out},
                id=record.id,
                source=record.source,
                row_number=record.row_number,
                metadata=dict(record.metadata),
            )
            try:
                out[conditional.dest_field] = await _maybe_await(conditional.fn(working))
            except CancellationRequested:
                raise
            except Exception as e:
                out[conditional.dest_field] = conditional.default
                failures.append(self._failure(record, conditional.dest_field, e, stats))

        mapped = DataRecord(
            fields=out,
            id=record.id,
            source=record.source,
            row_number=record.row_number,
            metadata=dict(record.metadata),
            errors=list(record.errors),
            created_at=record.created_at,
            modified_at=datetime.now(),
        )

        stats.records_mapped += 1
        if failures:
            stats.records_flagged += 1
            mapped.metadata["mapping_failed"] = True
            for failure in failures:
                mapped.add_error(source=self.name, message=failure.message, error_type="MappingError")
                if on_error is not None:
                    on_error(mapped, failure)
        return mapped

    def _failure(
        self,
        record: DataRecord,
        dest_field: str,
        error: Exception,
        stats: MappingStatistics,
    ) -> MappingError:
        stats.mapping_errors += 1
        message = f"Mapping to '{dest_field}' failed: {error}"
        logger.warning(f"{message} (record {record.id})")
        return MappingError(
            message,
            dest_field=dest_field,
            context={"record_id": record.id, "exception_type": type(error).__name__},
            component=self.name,
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def from_config(
        cls,
        mappings: List[MappingConfig],
        transforms: Optional[TransformRegistry] = None,
        name: str = "mapper",
    ) -> "DataMapper":
        """
        Build a mapper from declarative mapping entries.

        Conditional entries set dest_field to value when every `when`
        condition holds and to default otherwise.
        """
        transforms = transforms or TransformRegistry()
        mapper = cls(name=name)
        for entry in mappings:
            if entry.kind == "direct":
                if not entry.source_field:
                    raise ValueError(f"Direct mapping to '{entry.dest_field}' needs source_field")
                mapper.add_mapping(
                    entry.source_field,
                    entry.dest_field,
                    transforms.resolve(entry.transform, entry.transform_args),
                    entry.default,
                )
            elif entry.kind == "constant":
                mapper.add_constant_mapping(entry.dest_field, entry.value)
            else:
                predicate = AllOf(
                    tuple(Condition.from_config(c.field, c.operator, c.value) for c in entry.when)
                )
                mapper.add_conditional_mapping(
                    entry.dest_field,
                    _conditional_value(predicate, entry.value, entry.default),
                    entry.default,
                )
        return mapper


def _conditional_value(
    predicate: Callable[[DataRecord], bool],
    value: Any,
    default: Any,
) -> Callable[[DataRecord], Any]:
    def compute(record: DataRecord) -> Any:
        return value if predicate(record) else default

    return compute


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
