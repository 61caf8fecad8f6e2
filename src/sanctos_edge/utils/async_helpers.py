from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BackgroundTasks:
    """Holds detached tasks (cache write-back, revalidation, stats bumps).

    The request that spawns a task does not await it, but the task keeps a
    strong reference here until it finishes so the event loop cannot drop
    it.  Failures are logged, never raised into the request path.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
        """Schedule *coro* as a detached task and return it."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        return self.track(task)

    def track(self, task: asyncio.Task[T]) -> asyncio.Task[T]:
        """Keep *task* alive until done and log it if it fails."""
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def with_timeout(coro: Coroutine[Any, Any, T], seconds: float) -> T:
    """Run *coro* with a deadline, raising ``asyncio.TimeoutError`` if it exceeds *seconds*.

    Args:
        coro: The coroutine to run.
        seconds: Maximum number of seconds to wait.

    Returns:
        The value returned by *coro*.

    Raises:
        asyncio.TimeoutError: If *coro* does not complete within *seconds*.
    """
    return await asyncio.wait_for(coro, timeout=seconds)
