"""Detached background tasks with their own error containment."""

import asyncio
from typing import Coroutine, Any, Optional, Set
import logging

from ..core.logging import capture_exception

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Owns fire-and-forget tasks spawned after a caller has been answered.

    Tasks are referenced until they finish so the event loop cannot drop
    them. A task's exception is logged and reported, never re-raised into
    the code that spawned it.
    """

    def __init__(self, owner: str):
        self.owner = owner
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro``; it starts once the caller yields to the loop."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"{self.owner} background task {task.get_name()} failed: {exc!r}",
                         exc_info=exc)
            capture_exception(exc, {"owner": self.owner, "task": task.get_name()})

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def wait(self) -> None:
        """Wait until all tasks, including ones spawned meanwhile, are done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel outstanding tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
