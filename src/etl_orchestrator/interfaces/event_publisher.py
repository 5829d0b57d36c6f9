"""
Event Publisher Protocol.

Receives the orchestrator's lifecycle notifications (started, completed,
failed, stage-completed). Delivery is best effort: the orchestrator
waits at most a bounded timeout and only logs publisher failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from etl_orchestrator.domain.events import PipelineEvent


@runtime_checkable
class EventPublisher(Protocol):
    """Abstract interface for lifecycle event delivery."""

    async def publish(self, event: PipelineEvent) -> None:
        """Deliver one event."""
        ...
