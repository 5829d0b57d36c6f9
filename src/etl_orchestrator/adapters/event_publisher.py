"""
Event Publishers.

    - InMemoryEventPublisher: keeps events in a list (tests, dashboards)
    - LoggingEventPublisher: writes events to the module logger
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import List, Optional

from etl_orchestrator.domain.events import EventType, PipelineEvent

logger = logging.getLogger(__name__)


class InMemoryEventPublisher:
    """Records every published event."""

    def __init__(self) -> None:
        self._events: List[PipelineEvent] = []
        self._lock = Lock()

    async def publish(self, event: PipelineEvent) -> None:
        with self._lock:
            self._events.append(event)

    def get_events(self, event_type: Optional[EventType] = None) -> List[PipelineEvent]:
        """Published events, optionally filtered by type."""
        with self._lock:
            if event_type is None:
                return list(self._events)
            return [e for e in self._events if e.event_type is event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingEventPublisher:
    """Publishes events as log lines."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def publish(self, event: PipelineEvent) -> None:
        logger.log(
            self._level,
            f"{event.event_type.value} pipeline={event.pipeline_name or event.pipeline_id} "
            f"execution={event.execution_id} payload={event.payload}",
        )
