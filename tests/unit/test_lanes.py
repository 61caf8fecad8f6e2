"""Tests for server/lanes.py."""
from __future__ import annotations

import pytest

from sanctos_edge.core.constants import TrafficLane
from sanctos_edge.server.lanes import classify_lane, is_indexer_path


@pytest.mark.parametrize(
    ("method", "path", "lane"),
    [
        ("GET", "/dash", TrafficLane.DASH_GET),
        ("HEAD", "/dash", TrafficLane.DASH_GET),
        ("GET", "/health", TrafficLane.HEALTH_GET),
        ("GET", "/__sanctos_health", TrafficLane.HEALTH_GET),
        ("POST", "/health", TrafficLane.OTHER_POST),
        ("GET", "/indexer/v1/rooms", TrafficLane.INDEXER_GET),
        ("POST", "/indexer", TrafficLane.INDEXER_POST),
        ("POST", "/", TrafficLane.RPC_POST),
        ("post", "/", TrafficLane.RPC_POST),
        ("POST", "/rpc", TrafficLane.OTHER_POST),
        ("GET", "/", TrafficLane.OTHER_GET),
        ("DELETE", "/x", TrafficLane.OTHER_GET),
    ],
)
def test_classify_lane(method: str, path: str, lane: TrafficLane) -> None:
    assert classify_lane(method, path) is lane


def test_is_indexer_path() -> None:
    assert is_indexer_path("/indexer")
    assert is_indexer_path("/indexer/x")
    assert not is_indexer_path("/indexerx")
