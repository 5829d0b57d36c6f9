"""
In-Memory Connectors.

Source and destination adapters backed by Python lists. Used for tests,
demos and for pipelines embedded in other applications.
"""

from __future__ import annotations

import asyncio
import logging
from threading import Lock
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union

from etl_orchestrator.config.models import ConnectorConfig
from etl_orchestrator.domain.entities import DataRecord
from etl_orchestrator.pipeline.cancellation import CancellationToken

logger = logging.getLogger(__name__)

RecordLike = Union[DataRecord, Dict[str, Any]]


class InMemorySourceConnector:
    """Streams a fixed list of records in batches."""

    def __init__(
        self,
        records: Iterable[RecordLike],
        name: str = "memory-source",
        batch_size: int = 1000,
        batch_delay_seconds: float = 0.0,
    ) -> None:
        """
        Initialize the source.

        Args:
            records: DataRecords or plain dicts (wrapped on read)
            name: Connector name, used as record source
            batch_size: Records per batch between suspension points
            batch_delay_seconds: Simulated I/O latency per batch
        """
        self._records = list(records)
        self._name = name
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.read_count = 0

    @property
    def name(self) -> str:
        return self._name

    async def read(
        self, cancellation: Optional[CancellationToken] = None
    ) -> AsyncIterator[DataRecord]:
        self.read_count += 1
        for row_number, item in enumerate(self._records, start=1):
            if (row_number - 1) % self.batch_size == 0:
                if cancellation is not None:
                    await cancellation.sleep(self.batch_delay_seconds)
                else:
                    await asyncio.sleep(self.batch_delay_seconds)
            if isinstance(item, DataRecord):
                yield item
            else:
                yield DataRecord(fields=dict(item), source=self._name, row_number=row_number)

    @classmethod
    def from_config(cls, config: ConnectorConfig) -> "InMemorySourceConnector":
        """Build from config; rows come from settings['records']."""
        return cls(
            records=config.settings.get("records", []),
            name=config.connection_string or "memory-source",
            batch_size=config.batch_size,
        )


class InMemoryDestinationConnector:
    """Collects written records in a list."""

    def __init__(self, name: str = "memory-destination", batch_size: int = 1000) -> None:
        self._name = name
        self.batch_size = batch_size
        self._records: List[DataRecord] = []
        self._lock = Lock()
        self.batches_written = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def records(self) -> List[DataRecord]:
        with self._lock:
            return list(self._records)

    async def write(
        self,
        records: AsyncIterator[DataRecord],
        cancellation: Optional[CancellationToken] = None,
    ) -> int:
        written = 0
        batch: List[DataRecord] = []
        async for record in records:
            batch.append(record)
            if len(batch) >= self.batch_size:
                written += await self._flush(batch, cancellation)
                batch = []
        if batch:
            written += await self._flush(batch, cancellation)
        logger.debug(f"{self._name}: wrote {written} records")
        return written

    async def _flush(
        self,
        batch: List[DataRecord],
        cancellation: Optional[CancellationToken],
    ) -> int:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        with self._lock:
            self._records.extend(batch)
            self.batches_written += 1
        await asyncio.sleep(0)
        return len(batch)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self.batches_written = 0

    @classmethod
    def from_config(cls, config: ConnectorConfig) -> "InMemoryDestinationConnector":
        return cls(
            name=config.connection_string or "memory-destination",
            batch_size=config.batch_size,
        )
