"""In-flight request coalescing.

Concurrent callers asking for the same key share one pending upstream call.
Scope is one process: instances converge through the shared cache store,
not through this map.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")


class InflightCoalescer:
    """Map from key to the task currently producing that key's result.

    The first caller for a key starts *producer* exactly once; every caller
    arriving before the task settles joins the same task.  The slot is
    removed the moment the task settles, success or failure, but only if it
    still holds that very task.

    Diagnostics:
        ``created``: slots created (upstream calls started).
        ``joined``: callers that attached to an existing slot.
        ``max_inflight``: high-water mark of concurrent slots.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self.created = 0
        self.joined = 0
        self.max_inflight = 0

    def get_or_create(self, key: str, producer: Callable[[], Awaitable[_T]]) -> asyncio.Task[_T]:
        """Return the pending task for *key*, starting *producer* if there is none.

        Synchronous on purpose: two callers in the same event-loop tick can
        never both observe an empty slot.
        """
        existing = self._inflight.get(key)
        if existing is not None:
            self.joined += 1
            logger.debug("inflight_joined", key=key[:16])
            return existing

        task: asyncio.Task[_T] = asyncio.ensure_future(self._produce(key, producer))
        self._inflight[key] = task
        self.created += 1
        self.max_inflight = max(self.max_inflight, len(self._inflight))
        logger.debug("inflight_created", key=key[:16], inflight=len(self._inflight))
        return task

    async def run(self, key: str, producer: Callable[[], Awaitable[_T]]) -> _T:
        """Await the shared result for *key*.

        A caller that is cancelled while waiting does not cancel the shared
        task for the other waiters.
        """
        return await asyncio.shield(self.get_or_create(key, producer))

    async def _produce(self, key: str, producer: Callable[[], Awaitable[_T]]) -> _T:
        try:
            return await producer()
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    def has(self, key: str) -> bool:
        return key in self._inflight

    @property
    def size(self) -> int:
        """Return the number of keys currently in flight."""
        return len(self._inflight)

    def diagnostics(self) -> dict[str, int]:
        return {
            "inflightEntries": self.size,
            "inflightCreated": self.created,
            "inflightJoined": self.joined,
            "inflightMax": self.max_inflight,
        }
