"""
Pending operations released by a one-shot completion signal.

Used to defer work (e.g. resuming the latest edit session) until the user
signs in to the store. Operations are held in an explicit queue rather than
as event-listener registrations, so nothing stays subscribed if the signal
never arrives: cancel() simply drops the queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

__all__ = ['PendingOperationQueue']

logger = logging.getLogger(__name__)

PendingOperation = Callable[[], Awaitable[Any]]


class PendingOperationQueue:
    """
    Keyed operations waiting for a one-shot completion signal.

    - enqueue() before complete(): held; re-enqueueing a key replaces the held operation
    - complete(): runs every held operation once, in enqueue order
    - enqueue() after complete(): runs immediately
    - cancel(): drops held operations without running them
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingOperation] = {}
        self._completed = False
        self._lock = asyncio.Lock()

    @property
    def completed(self) -> bool:
        return self._completed

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def enqueue(self, key: str, operation: PendingOperation) -> bool:
        """
        Hold an operation until complete(), or run it now if already completed.

        Returns:
            True if the operation was queued, False if it ran immediately
        """
        if self._completed:
            await operation()
            return False
        self._pending.pop(key, None)  # Re-enqueue moves the key to the end
        self._pending[key] = operation
        return True

    async def complete(self) -> int:
        """
        Fire the signal and run held operations. Later calls are no-ops.

        A failing operation is logged and does not prevent the others from running.

        Returns:
            Number of operations run
        """
        async with self._lock:
            if self._completed:
                return 0
            self._completed = True
            operations = list(self._pending.items())
            self._pending.clear()

        for key, operation in operations:
            try:
                await operation()
            except Exception:
                logger.exception('Pending operation %r failed', key)
        return len(operations)

    def cancel(self) -> None:
        """Drop every held operation."""
        self._pending.clear()
