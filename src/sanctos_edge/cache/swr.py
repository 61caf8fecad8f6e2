"""Stale-while-revalidate layer over a :class:`~sanctos_edge.cache.store.CacheStore`.

Per key, an entry's age decides its state:

* ``age <= ttl``                  -> FRESH, served as ``HIT``
* ``ttl < age <= ttl + swr``      -> STALE, served as ``STALE`` while one
  background revalidation refreshes it
* ``age > ttl + swr``             -> EXPIRED, treated as absent but kept as
  a last-resort fallback when the upstream fails
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable

import structlog
from pydantic import BaseModel, ConfigDict

from sanctos_edge.cache.store import CacheEntry, CacheStore
from sanctos_edge.core.coalescer import InflightCoalescer
from sanctos_edge.core.constants import MAX_STORE_TTL_SECONDS, EntryState
from sanctos_edge.core.exceptions import CacheIntegrityError
from sanctos_edge.utils.async_helpers import BackgroundTasks

logger = structlog.get_logger(__name__)

_REVALIDATE_PREFIX = "reval:"


class CacheLookup(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: EntryState
    entry: CacheEntry | None = None
    age: float = 0.0


class SwrCache:
    """TTL + stale-while-revalidate cache with bounded stale fallback.

    Args:
        store: Backend byte store shared by every request.
        coalescer: Process-local coalescer, used to keep at most one
            revalidation per key in flight.
        tasks: Holder for detached write-back and revalidation tasks.
        swr_window: Seconds past the TTL during which stale entries are served.
        stale_fallback: Serve expired entries when the upstream fails.
        fallback_max_age: Oldest entry age (seconds) eligible for fallback.
        sync_write: Await cache writes inside the request instead of
            deferring them to a background task.
    """

    def __init__(
        self,
        store: CacheStore,
        coalescer: InflightCoalescer,
        tasks: BackgroundTasks,
        *,
        swr_window: int = 60,
        stale_fallback: bool = True,
        fallback_max_age: int = 3600,
        sync_write: bool = False,
    ) -> None:
        self.store = store
        self._coalescer = coalescer
        self._tasks = tasks
        self.swr_window = max(0, swr_window)
        self.stale_fallback = stale_fallback
        self.fallback_max_age = fallback_max_age
        self.sync_write = sync_write

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def lookup(self, key: str) -> CacheLookup:
        """Classify the entry stored under *key*.

        Raises:
            CacheIntegrityError: If the stored value cannot be decoded.  The
                broken value is deleted so the next write can replace it.
        """
        raw = await self.store.get(key)
        if raw is None:
            return CacheLookup(state=EntryState.ABSENT)

        try:
            entry = CacheEntry.from_bytes(raw)
        except CacheIntegrityError:
            logger.warning("cache_entry_corrupt", key=key[:16])
            await self.store.delete(key)
            raise

        if not entry.has_meta:
            return CacheLookup(state=EntryState.FRESH, entry=entry)

        age = entry.age_seconds(time.time() * 1000)
        ttl = entry.ttl_seconds or 0
        if age <= ttl:
            state = EntryState.FRESH
        elif age <= ttl + self.swr_window:
            state = EntryState.STALE
        else:
            state = EntryState.EXPIRED
        return CacheLookup(state=state, entry=entry, age=age)

    def fallback_for(self, lookup: CacheLookup) -> CacheEntry | None:
        """Return the expired entry if it may still be served on upstream failure."""
        if not self.stale_fallback or lookup.state != EntryState.EXPIRED:
            return None
        if lookup.age > self.fallback_max_age:
            return None
        return lookup.entry

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store_ttl(self, ttl: int) -> int:
        """Lifetime in the backend, capped at an hour.

        Covers the SWR window, and with stale fallback enabled also the
        fallback age, so expired entries are still there to fall back on.
        """
        keep = ttl + self.swr_window
        if self.stale_fallback:
            keep = max(keep, self.fallback_max_age)
        return max(1, min(MAX_STORE_TTL_SECONDS, keep))

    def build_entry(
        self,
        *,
        status: int,
        body: bytes,
        content_type: str,
        ttl: int,
        headers: dict[str, str] | None = None,
    ) -> CacheEntry:
        return CacheEntry(
            status=status,
            body=body,
            content_type=content_type,
            headers=headers or {},
            cached_at_ms=int(time.time() * 1000),
            ttl_seconds=ttl,
        )

    async def write(self, key: str, entry: CacheEntry) -> None:
        """Write *entry* back, never failing the caller.

        In deferred mode the write runs as a detached task so the response
        is not held up; in sync mode it is awaited but errors are only logged.
        """
        ttl = self.store_ttl(entry.ttl_seconds or 0)
        value = entry.to_bytes()

        if not self.sync_write:
            self._tasks.spawn(self.store.put(key, value, ttl), name=f"cache-put:{key[:16]}")
            return

        try:
            await self.store.put(key, value, ttl)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_write_failed", key=key[:16], error=str(exc))

    # ------------------------------------------------------------------
    # Revalidation
    # ------------------------------------------------------------------

    def schedule_revalidation(self, key: str, refresh: Callable[[], Awaitable[Any]]) -> bool:
        """Start a background refresh for *key* unless one is already running.

        Returns:
            ``True`` if a new revalidation was started.
        """
        reval_key = _REVALIDATE_PREFIX + key
        if self._coalescer.has(reval_key):
            return False

        async def _guarded() -> None:
            try:
                await refresh()
            except Exception as exc:  # noqa: BLE001
                # The stale entry stays in place untouched.
                logger.info("revalidation_failed", key=key[:16], error=str(exc))

        task = self._coalescer.get_or_create(reval_key, _guarded)
        self._tasks.track(task)
        logger.debug("revalidation_scheduled", key=key[:16])
        return True
