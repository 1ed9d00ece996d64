"""Fire-and-forget coroutines that may outlive the HTTP response."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Coroutine

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class Scheduler(Protocol):
    """Runs work after the response, with best-effort completion."""

    def run_in_background(self, coro: Coroutine[Any, Any, Any], *, label: str) -> None:
        """Schedule ``coro`` without awaiting it."""


class BackgroundTaskRunner:
    """Scheduler backed by asyncio tasks that are drained on shutdown."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def run_in_background(self, coro: Coroutine[Any, Any, Any], *, label: str) -> None:
        task = asyncio.create_task(coro, name=label)
        # The event loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        LOGGER.debug("Scheduled background task %s", label)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            LOGGER.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "Background task %s failed",
                task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every scheduled task, including ones scheduled while waiting."""
        while self._tasks:
            pending = list(self._tasks)
            LOGGER.info("Waiting for %d background task(s)", len(pending))
            _done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                LOGGER.warning("%d background task(s) still running at shutdown", len(not_done))
                return
