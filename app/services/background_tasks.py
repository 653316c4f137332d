from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Fire-and-forget tasks with an error sink.

    The event loop only keeps weak references to tasks, so the runner holds
    them until they finish. Exceptions are logged here and never propagate
    to whoever submitted the work.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, coro: Awaitable, name: str = "background-task") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"Background task {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self) -> None:
        """Wait for every outstanding task, including ones submitted while draining."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
