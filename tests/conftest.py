"""Shared test fixtures."""
from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from rpc_fakes import FALLBACK, PRIMARY, FakeUpstream

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.proxy import EdgeProxy
from sanctos_edge.stats.actor import InMemoryStatsStorage, StatsActor


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def edge_config() -> EdgeConfig:
    return EdgeConfig(upstreams=[PRIMARY, FALLBACK], swr_window=60)


@pytest.fixture
def stats_actor() -> StatsActor:
    return StatsActor(InMemoryStatsStorage())


@pytest.fixture
async def proxy(
    edge_config: EdgeConfig, upstream: FakeUpstream, stats_actor: StatsActor
) -> AsyncGenerator[EdgeProxy, None]:
    p = EdgeProxy.from_config(
        edge_config,
        environ={},
        stats_actor=stats_actor,
        upstream_transport=upstream.transport(),
    )
    yield p
    await p.close()
