"""Tests for stats/client.py — local and HTTP stats clients."""
from __future__ import annotations

import json

import httpx
import pytest

from sanctos_edge.core.exceptions import StatsUnavailableError
from sanctos_edge.stats.actor import StatsActor, StatsStorage
from sanctos_edge.stats.client import HttpStatsClient, LocalStatsClient, degraded_snapshot
from sanctos_edge.stats.models import CacheEvent, StatsState, TrafficEvent
from sanctos_edge.stats.service import create_stats_app
from sanctos_edge.utils.async_helpers import BackgroundTasks


class FailingStorage(StatsStorage):
    async def load(self) -> StatsState | None:
        raise OSError("read-only filesystem")

    async def save(self, state: StatsState) -> None:
        raise OSError("read-only filesystem")


# ---------------------------------------------------------------------------
# LocalStatsClient
# ---------------------------------------------------------------------------


async def test_local_record_is_applied_in_background() -> None:
    tasks = BackgroundTasks()
    actor = StatsActor()
    client = LocalStatsClient(actor, tasks)

    client.record(CacheEvent(lane="hit"))
    client.record(CacheEvent(lane="hit"))
    await tasks.drain()

    assert (await client.get()).cache_hits == 2


async def test_local_failures_become_stats_unavailable() -> None:
    client = LocalStatsClient(StatsActor(FailingStorage()), BackgroundTasks())
    with pytest.raises(StatsUnavailableError):
        await client.get()
    with pytest.raises(StatsUnavailableError):
        await client.ping()


async def test_record_never_raises_on_failure() -> None:
    tasks = BackgroundTasks()
    client = LocalStatsClient(StatsActor(FailingStorage()), tasks)
    client.record(CacheEvent(lane="miss"))
    await tasks.drain()
    assert tasks.pending == 0


async def test_snapshot_degrades_instead_of_raising() -> None:
    client = LocalStatsClient(StatsActor(FailingStorage()), BackgroundTasks())
    snap = await client.snapshot()
    assert snap.degraded is True
    assert snap.total_requests == 0
    assert snap.last_upstream_error.startswith("stats_get_failed")


def test_degraded_snapshot_is_zeroed() -> None:
    snap = degraded_snapshot("boom")
    assert snap.degraded
    assert snap.cache_hits == snap.cache_misses == snap.cache_bypass == 0
    assert snap.start_time > 0


# ---------------------------------------------------------------------------
# HttpStatsClient
# ---------------------------------------------------------------------------


async def test_http_client_round_trips_through_stats_service() -> None:
    actor = StatsActor()
    transport = httpx.ASGITransport(app=create_stats_app(actor))
    client = HttpStatsClient("http://stats", BackgroundTasks(), transport=transport)

    await client.bump(CacheEvent(lane="bypass", n=2))
    snap = await client.get()
    pong = await client.ping()

    assert snap.cache_bypass == 2
    assert pong["ok"] is True
    assert (await actor.get()).cache_bypass == 2
    await client.close()


async def test_http_client_sends_camel_case_events() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    client = HttpStatsClient(
        "http://stats/", BackgroundTasks(), transport=httpx.MockTransport(handler)
    )
    await client.bump(TrafficEvent(lane="rpcPost", http_method="POST", ts=5))
    assert seen == [{"type": "traffic", "lane": "rpcPost", "httpMethod": "POST", "ts": 5}]
    await client.close()


async def test_http_client_errors_become_stats_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = HttpStatsClient("http://stats", BackgroundTasks(), transport=httpx.MockTransport(handler))
    with pytest.raises(StatsUnavailableError):
        await client.get()
    snap = await client.snapshot()
    assert snap.degraded
    await client.close()


async def test_http_client_rejects_error_status() -> None:
    transport = httpx.MockTransport(lambda _req: httpx.Response(500, text="nope"))
    client = HttpStatsClient("http://stats", BackgroundTasks(), transport=transport)
    with pytest.raises(StatsUnavailableError) as exc_info:
        await client.ping()
    assert exc_info.value.status_code == 500
    await client.close()
