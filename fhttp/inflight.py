"""Tracking of in-flight forwarding tasks."""

import asyncio
from collections.abc import Coroutine
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)


class InflightGroup:
    """
    Counts running forwarding tasks and lets a caller wait until none remain.

    The counter is incremented before a task is scheduled and decremented
    when it finishes, whatever the outcome. Spawning is unbounded.
    """

    def __init__(self) -> None:
        self._count = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return self._count

    def add(self) -> None:
        self._count += 1
        self._idle.clear()

    def done(self) -> None:
        if self._count <= 0:
            raise RuntimeError("in-flight counter released more times than acquired")
        self._count -= 1
        if self._count == 0:
            self._idle.set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Register one unit of work, then schedule ``coro`` as its task."""
        self.add()
        try:
            task = asyncio.create_task(coro, name=name)
        except RuntimeError:
            self.done()
            coro.close()
            raise

        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    async def wait(self) -> None:
        """Block until the counter is back to zero."""
        await self._idle.wait()

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        self.done()

        if not task.cancelled() and task.exception() is not None:
            logger.error("Forwarding task failed", exc_info=task.exception(), extra={"task": task.get_name()})
