"""Tests for cache/swr.py — freshness states, fallback and revalidation."""
from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from sanctos_edge.cache.store import CacheEntry, InMemoryCacheStore
from sanctos_edge.cache.swr import CacheLookup, SwrCache
from sanctos_edge.core.coalescer import InflightCoalescer
from sanctos_edge.core.constants import EntryState
from sanctos_edge.core.exceptions import CacheIntegrityError
from sanctos_edge.utils.async_helpers import BackgroundTasks

T0 = 1_700_000_000.0


def _cache(**kwargs: object) -> SwrCache:
    return SwrCache(InMemoryCacheStore(), InflightCoalescer(), BackgroundTasks(), **kwargs)


async def _seed(cache: SwrCache, key: str = "k", *, ttl: int = 10, at: float = T0) -> CacheEntry:
    with patch("sanctos_edge.cache.swr.time") as mock_time:
        mock_time.time.return_value = at
        entry = cache.build_entry(status=200, body=b'{"result":1}', content_type="application/json", ttl=ttl)
    await cache.store.put(key, entry.to_bytes(), 3600)
    return entry


async def _lookup_at(cache: SwrCache, now: float, key: str = "k") -> CacheLookup:
    with patch("sanctos_edge.cache.swr.time") as mock_time:
        mock_time.time.return_value = now
        return await cache.lookup(key)


# ---------------------------------------------------------------------------
# lookup
# ---------------------------------------------------------------------------


async def test_absent_key() -> None:
    lookup = await _cache().lookup("nope")
    assert lookup.state == EntryState.ABSENT
    assert lookup.entry is None


@pytest.mark.parametrize(
    ("offset", "state"),
    [
        (0, EntryState.FRESH),
        (10, EntryState.FRESH),
        (10.5, EntryState.STALE),
        (70, EntryState.STALE),
        (70.5, EntryState.EXPIRED),
    ],
)
async def test_state_follows_age(offset: float, state: EntryState) -> None:
    cache = _cache(swr_window=60)
    await _seed(cache, ttl=10)
    lookup = await _lookup_at(cache, T0 + offset)
    assert lookup.state == state
    assert lookup.age == pytest.approx(offset)


async def test_zero_swr_window_goes_straight_to_expired() -> None:
    cache = _cache(swr_window=0)
    await _seed(cache, ttl=10)
    assert (await _lookup_at(cache, T0 + 11)).state == EntryState.EXPIRED


async def test_entry_without_metadata_is_fresh() -> None:
    cache = _cache()
    await cache.store.put("k", CacheEntry(status=200, body=b"{}").to_bytes(), 60)
    lookup = await _lookup_at(cache, T0 + 100_000)
    assert lookup.state == EntryState.FRESH


async def test_corrupt_entry_is_deleted_and_reported() -> None:
    cache = _cache()
    await cache.store.put("k", b"garbage", 60)
    with pytest.raises(CacheIntegrityError):
        await cache.lookup("k")
    assert await cache.store.get("k") is None


# ---------------------------------------------------------------------------
# fallback_for
# ---------------------------------------------------------------------------


async def test_fallback_for_expired_entry_within_max_age() -> None:
    cache = _cache(swr_window=5, fallback_max_age=600)
    entry = await _seed(cache, ttl=10)
    lookup = await _lookup_at(cache, T0 + 300)
    assert lookup.state == EntryState.EXPIRED
    assert cache.fallback_for(lookup) == entry


async def test_fallback_refused_beyond_max_age() -> None:
    cache = _cache(swr_window=5, fallback_max_age=600)
    await _seed(cache, ttl=10)
    lookup = await _lookup_at(cache, T0 + 601)
    assert cache.fallback_for(lookup) is None


async def test_fallback_disabled() -> None:
    cache = _cache(swr_window=5, stale_fallback=False)
    await _seed(cache, ttl=10)
    lookup = await _lookup_at(cache, T0 + 30)
    assert cache.fallback_for(lookup) is None


async def test_fallback_only_for_expired_state() -> None:
    cache = _cache()
    await _seed(cache, ttl=10)
    lookup = await _lookup_at(cache, T0 + 1)
    assert cache.fallback_for(lookup) is None


# ---------------------------------------------------------------------------
# writes
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(("ttl", "swr", "expected"), [(8, 60, 68), (0, 0, 1), (259200, 60, 3600)])
def test_store_ttl_bounds_without_fallback(ttl: int, swr: int, expected: int) -> None:
    assert _cache(swr_window=swr, stale_fallback=False).store_ttl(ttl) == expected


@pytest.mark.parametrize(
    ("ttl", "swr", "max_age", "expected"),
    [(8, 60, 3600, 3600), (8, 60, 600, 600), (8, 60, 30, 68), (259200, 60, 7200, 3600)],
)
def test_store_ttl_keeps_entries_for_fallback(ttl: int, swr: int, max_age: int, expected: int) -> None:
    cache = _cache(swr_window=swr, fallback_max_age=max_age)
    assert cache.store_ttl(ttl) == expected


async def test_deferred_write_lands_after_drain() -> None:
    tasks = BackgroundTasks()
    cache = SwrCache(InMemoryCacheStore(), InflightCoalescer(), tasks)
    entry = cache.build_entry(status=200, body=b"{}", content_type="application/json", ttl=5)

    await cache.write("k", entry)
    assert tasks.pending == 1
    await tasks.drain()
    assert await cache.store.get("k") == entry.to_bytes()


async def test_sync_write_lands_immediately() -> None:
    cache = _cache(sync_write=True)
    entry = cache.build_entry(status=200, body=b"{}", content_type="application/json", ttl=5)
    await cache.write("k", entry)
    assert await cache.store.get("k") is not None


async def test_sync_write_failure_is_swallowed() -> None:
    class BrokenStore(InMemoryCacheStore):
        async def put(self, key: str, value: bytes, ttl_seconds: float) -> None:
            raise OSError("disk full")

    cache = SwrCache(BrokenStore(), InflightCoalescer(), BackgroundTasks(), sync_write=True)
    entry = cache.build_entry(status=200, body=b"{}", content_type="application/json", ttl=5)
    await cache.write("k", entry)


# ---------------------------------------------------------------------------
# revalidation
# ---------------------------------------------------------------------------


async def test_only_one_revalidation_per_key() -> None:
    tasks = BackgroundTasks()
    cache = SwrCache(InMemoryCacheStore(), InflightCoalescer(), tasks)
    gate = asyncio.Event()
    runs = 0

    async def refresh() -> None:
        nonlocal runs
        runs += 1
        await gate.wait()

    assert cache.schedule_revalidation("k", refresh) is True
    assert cache.schedule_revalidation("k", refresh) is False
    gate.set()
    await tasks.drain()
    assert runs == 1

    # Once settled, a new revalidation may start.
    assert cache.schedule_revalidation("k", refresh) is True
    await tasks.drain()
    assert runs == 2


async def test_revalidation_failure_is_logged_not_raised() -> None:
    tasks = BackgroundTasks()
    cache = SwrCache(InMemoryCacheStore(), InflightCoalescer(), tasks)

    async def refresh() -> None:
        raise RuntimeError("upstream down")

    cache.schedule_revalidation("k", refresh)
    await tasks.drain()
    assert tasks.pending == 0
