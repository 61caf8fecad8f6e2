# RUN: python examples/01_cache_walkthrough.py
"""Cache walkthrough: MISS, HIT, coalescing and bypass against a fake upstream.

Demonstrates: EdgeProxy.from_config(), handle_rpc(), the x-sanctos-cache
tag on each reply, and the health document.
"""

import asyncio
import json

import httpx

from sanctos_edge import EdgeConfig, EdgeProxy

UPSTREAM = "https://rpc.example/"


def fake_upstream(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body.get("id"), "result": 311_000_000})


def call(method: str, id: int = 1) -> bytes:
    return json.dumps({"jsonrpc": "2.0", "id": id, "method": method}).encode()


async def main() -> None:
    # 1. Build a proxy whose upstream is an in-process mock
    config = EdgeConfig(upstreams=[UPSTREAM])
    async with EdgeProxy.from_config(
        config, environ={}, upstream_transport=httpx.MockTransport(fake_upstream)
    ) as proxy:
        # 2. First call misses and is written back in the background
        reply = await proxy.handle_rpc(call("getSlot"))
        print(f"getSlot #1      : {reply.headers['x-sanctos-cache']}")
        await proxy.tasks.drain()

        # 3. Same call, different id: served from cache
        reply = await proxy.handle_rpc(call("getSlot", id=2))
        print(f"getSlot #2      : {reply.headers['x-sanctos-cache']}")

        # 4. Ten identical concurrent misses share one upstream call
        await asyncio.gather(*(proxy.handle_rpc(call("getBlockHeight")) for _ in range(10)))
        print(f"coalescer       : {proxy.coalescer.diagnostics()}")

        # 5. Writes always go straight upstream
        reply = await proxy.handle_rpc(call("sendTransaction"))
        print(f"sendTransaction : {reply.headers['x-sanctos-cache']}")

        # 6. Health document
        await proxy.tasks.drain()
        health = await proxy.health()
        print(json.dumps(health["stats"], indent=2)[:400])


if __name__ == "__main__":
    asyncio.run(main())
