"""
Cancellation Token - Cooperative Cancellation Signal.

A token is created per execution and passed by reference through every
suspension point: stages, connectors, the rule engine, the mapper and
retry backoff waits.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from etl_orchestrator.domain.exceptions import CancellationRequested


class CancellationToken:
    """Cooperative cancellation signal backed by an asyncio.Event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Cancellation requested") -> None:
        """Request cancellation. Idempotent."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise CancellationRequested if cancellation was requested."""
        if self._event.is_set():
            raise CancellationRequested(self._reason or "Cancellation requested")

    async def wait(self) -> None:
        """Suspend until cancellation is requested."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """
        Sleep for the given duration, waking early on cancellation.

        Raises:
            CancellationRequested: If cancelled before or during the sleep
        """
        self.raise_if_cancelled()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                return
        self.raise_if_cancelled()
