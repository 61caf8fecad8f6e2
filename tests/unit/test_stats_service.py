"""Tests for stats/service.py — the stats actor HTTP protocol."""
from __future__ import annotations

from httpx import ASGITransport, AsyncClient

from sanctos_edge.stats.actor import StatsActor
from sanctos_edge.stats.service import create_stats_app


def _client(actor: StatsActor) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_stats_app(actor)), base_url="http://stats")


async def test_ping() -> None:
    async with _client(StatsActor()) as client:
        resp = await client.get("/ping")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


async def test_bump_then_get() -> None:
    actor = StatsActor()
    async with _client(actor) as client:
        resp = await client.post("/bump", json={"type": "methods", "methods": ["getSlot", "getSlot"]})
        assert resp.json() == {"ok": True}
        resp = await client.post("/bump", json={"type": "cache", "lane": "hit"})
        assert resp.status_code == 200

        data = (await client.get("/get")).json()
    assert data["cacheHits"] == 1
    assert data["allTimeCounts"] == {"getSlot": 2}
    assert data["degraded"] is False


async def test_unknown_event_type_is_rejected() -> None:
    async with _client(StatsActor()) as client:
        resp = await client.post("/bump", json={"type": "nope"})
    assert resp.status_code == 400


async def test_invalid_cache_lane_is_rejected() -> None:
    actor = StatsActor()
    async with _client(actor) as client:
        resp = await client.post("/bump", json={"type": "cache", "lane": "sideways"})
    assert resp.status_code == 400
    assert (await actor.get()).cache_hits == 0
