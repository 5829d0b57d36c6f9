"""
Connector Protocols.

Defines the abstract interfaces for source and destination adapters.
Format- and system-specific connectors (files, databases, object
storage, queues) implement these outside the core.

Connectors are responsible for:
    - Streaming records as an asynchronous sequence
    - Observing the cancellation token between batches
    - Raising TransientAdapterError for retryable failures and
      FatalAdapterError for everything else

Design Notes:
    - The core only relies on ConnectorConfig
      {connector_type, connection_string, batch_size}
    - Already-committed writes are never rolled back by the core
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterator, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from etl_orchestrator.domain.entities import DataRecord
    from etl_orchestrator.pipeline.cancellation import CancellationToken


@runtime_checkable
class SourceConnector(Protocol):
    """Reads records from an external system."""

    @property
    def name(self) -> str:
        ...

    def read(
        self, cancellation: Optional[CancellationToken] = None
    ) -> AsyncIterator[DataRecord]:
        """
        Stream records from the source.

        Args:
            cancellation: Token to observe between batches

        Returns:
            Async iterator of records
        """
        ...


@runtime_checkable
class DestinationConnector(Protocol):
    """Writes records to an external system."""

    @property
    def name(self) -> str:
        ...

    async def write(
        self,
        records: AsyncIterator[DataRecord],
        cancellation: Optional[CancellationToken] = None,
    ) -> int:
        """
        Consume an async record stream.

        Args:
            records: Records to write
            cancellation: Token to observe between batches

        Returns:
            Number of records written
        """
        ...
