"""Fire-and-forget background jobs keyed by codebase path.

Jobs are submitted without blocking the request path. The runner holds
strong references until each job finishes (asyncio only keeps weak ones) and
logs anything that escapes a job. Jobs are expected to convert their own
failures into state; an escaped exception here is a bug, not an outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from typing import Any

__all__ = [
    'JobRunner',
]

logger = logging.getLogger(__name__)


class JobRunner:
    """Track one background task per key."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def submit(self, key: str, coro: Coroutine[Any, Any, None]) -> None:
        """Start coro in the background. Returns immediately.

        Raises:
            RuntimeError: If a job for key is still running.
        """
        if self.is_active(key):
            coro.close()
            raise RuntimeError(f'[{self._name}] Job already running for {key}')
        task = asyncio.create_task(coro, name=f'{self._name}:{key}')
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._on_done(key, t))

    def _on_done(self, key: str, task: asyncio.Task[None]) -> None:
        """Callback: forget the finished task and log escaped errors."""
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if task.cancelled():
            logger.info(f'[{self._name}] Job cancelled: {key}')
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f'[{self._name}] Job for {key} raised: {exc!r}', exc_info=exc)

    def is_active(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def active_keys(self) -> Sequence[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    async def wait(self, key: str) -> None:
        """Wait for the job for key to finish, if any. Never raises its errors."""
        task = self._tasks.get(key)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def cancel_all(self) -> Sequence[str]:
        """Cancel every running job and wait for them to unwind.

        Returns:
            Keys of the jobs that were cancelled.
        """
        tasks = dict(self._tasks)
        for task in tasks.values():
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks.values(), return_exceptions=True)
        return [key for key, task in tasks.items() if task.cancelled()]
