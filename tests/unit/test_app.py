"""Tests for the edge node FastAPI app (server/app.py and its routers)."""
from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
from rpc_fakes import PRIMARY, FakeUpstream, rpc

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.proxy import EdgeProxy
from sanctos_edge.server.app import create_app
from sanctos_edge.server.routers.rpc import USAGE_BANNER


def _client(proxy: EdgeProxy) -> httpx.AsyncClient:
    app = create_app(proxy=proxy)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://edge")


@pytest.fixture
async def client(proxy: EdgeProxy) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with _client(proxy) as c:
        yield c


# ---------------------------------------------------------------------------
# RPC
# ---------------------------------------------------------------------------


async def test_rpc_post_is_proxied(client: httpx.AsyncClient, proxy: EdgeProxy) -> None:
    resp = await client.post("/", content=rpc("getSlot"))
    assert resp.status_code == 200
    assert resp.json() == {"jsonrpc": "2.0", "id": 1, "result": 1}
    assert resp.headers["x-sanctos-cache"] == "MISS"
    assert resp.headers["x-sanctos-instance"] == proxy.instance_id
    assert "x-sanctos-cache" in resp.headers["access-control-expose-headers"]


async def test_rpc_post_hits_cache(client: httpx.AsyncClient, proxy: EdgeProxy, upstream: FakeUpstream) -> None:
    await client.post("/", content=rpc("getBalance", ["addr"]))
    await proxy.tasks.drain()
    resp = await client.post("/", content=rpc("getBalance", ["addr"], id=7))
    assert resp.headers["x-sanctos-cache"] == "HIT"
    assert "x-sanctos-cached-at" in resp.headers
    assert upstream.calls_to(PRIMARY) == 1


async def test_invalid_json_is_400(client: httpx.AsyncClient) -> None:
    resp = await client.post("/", content=b"not json")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid JSON"}


async def test_empty_body_is_400(client: httpx.AsyncClient) -> None:
    resp = await client.post("/", content=b"")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Empty body"}


@pytest.mark.parametrize("path", ["/", "/anything/else"])
async def test_get_returns_banner(client: httpx.AsyncClient, path: str) -> None:
    resp = await client.get(path)
    assert resp.status_code == 200
    assert resp.text == USAGE_BANNER


async def test_unexpected_error_is_500(client: httpx.AsyncClient, proxy: EdgeProxy) -> None:
    async def boom(_body: bytes) -> None:
        raise RuntimeError("kaboom")

    proxy.handle_rpc = boom  # type: ignore[method-assign]
    resp = await client.post("/", content=rpc("getSlot"))
    assert resp.status_code == 500
    assert resp.text == "Worker error: kaboom"
    assert resp.headers["x-sanctos-instance"] == proxy.instance_id


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


async def test_preflight_is_204_with_cors(client: httpx.AsyncClient) -> None:
    resp = await client.options(
        "/",
        headers={
            "origin": "https://wallet.example",
            "access-control-request-headers": "content-type,x-custom",
        },
    )
    assert resp.status_code == 204
    assert resp.headers["access-control-allow-origin"] == "https://wallet.example"
    assert resp.headers["access-control-allow-headers"] == "content-type,x-custom"
    assert resp.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert resp.headers["vary"] == "Origin"


async def test_disallowed_origin_is_not_echoed(upstream: FakeUpstream) -> None:
    config = EdgeConfig(upstreams=[PRIMARY], allow_origins=["https://app.example"])
    proxy = EdgeProxy.from_config(config, environ={}, upstream_transport=upstream.transport())
    async with _client(proxy) as c:
        allowed = await c.post("/", content=rpc("getSlot"), headers={"origin": "https://app.example"})
        denied = await c.post("/", content=rpc("getSlot"), headers={"origin": "https://evil.example"})
    await proxy.close()

    assert allowed.headers["access-control-allow-origin"] == "https://app.example"
    assert "access-control-allow-origin" not in denied.headers
    assert "x-sanctos-cache" in denied.headers["access-control-expose-headers"]


# ---------------------------------------------------------------------------
# Health / dash / ping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("path", ["/health", "/__sanctos_health"])
async def test_health_endpoints(client: httpx.AsyncClient, path: str) -> None:
    resp = await client.get(path)
    assert resp.status_code == 200
    assert resp.headers["x-sanctos-health"] == "1"
    assert resp.headers["cache-control"] == "no-store"
    body = resp.json()
    assert body["status"] == "ok"
    assert {"env", "stats", "methods", "uptimeSec"} <= set(body)


async def test_dash_page(client: httpx.AsyncClient) -> None:
    resp = await client.get("/dash")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert "script-src 'self' 'unsafe-inline'" in resp.headers["content-security-policy"]
    assert resp.headers["x-frame-options"] == "DENY"
    assert "/__sanctos_health" in resp.text


async def test_dash_head_has_no_body(client: httpx.AsyncClient) -> None:
    resp = await client.head("/dash")
    assert resp.status_code == 200
    assert resp.content == b""
    assert "content-security-policy" in resp.headers


async def test_stats_ping(client: httpx.AsyncClient) -> None:
    resp = await client.get("/__sanctos_do_ping")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["do"]["ok"] is True


# ---------------------------------------------------------------------------
# Traffic accounting
# ---------------------------------------------------------------------------


async def test_traffic_lanes_are_counted(client: httpx.AsyncClient, proxy: EdgeProxy) -> None:
    await client.post("/", content=rpc("getSlot"))
    await client.get("/health")
    await client.get("/dash")
    await client.get("/favicon.ico")
    await client.post("/indexer/x", content=b"{}")
    await proxy.tasks.drain()

    snap = await proxy.stats.get()
    totals = snap.traffic.totals
    assert totals["rpcPost"] == 1
    assert totals["healthGet"] == 1
    assert totals["dashGet"] == 1
    assert totals["otherGet"] == 1
    assert totals["indexerPost"] == 1
    assert snap.total_requests == 5
    assert snap.total_post_requests == 2


async def test_dash_polling_is_not_counted(client: httpx.AsyncClient, proxy: EdgeProxy) -> None:
    await client.get("/__sanctos_health", headers={"x-sanctos-internal": "dash"})
    await proxy.tasks.drain()
    snap = await proxy.stats.get()
    assert snap.total_requests == 0


async def test_preflight_is_not_counted(client: httpx.AsyncClient, proxy: EdgeProxy) -> None:
    await client.options("/")
    await proxy.tasks.drain()
    snap = await proxy.stats.get()
    assert snap.total_requests == 0
