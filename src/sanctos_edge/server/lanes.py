"""Traffic-lane classification for the per-request stats bump."""
from __future__ import annotations

from sanctos_edge.core.constants import TrafficLane

HEALTH_PATHS = frozenset({"/health", "/__sanctos_health"})


def is_indexer_path(path: str) -> bool:
    return path == "/indexer" or path.startswith("/indexer/")


def classify_lane(method: str, path: str) -> TrafficLane:
    """Map an incoming request to the lane it is counted under."""
    method = method.upper()
    if method in ("GET", "HEAD") and path == "/dash":
        return TrafficLane.DASH_GET
    if method == "GET" and path in HEALTH_PATHS:
        return TrafficLane.HEALTH_GET
    if is_indexer_path(path):
        return TrafficLane.INDEXER_POST if method == "POST" else TrafficLane.INDEXER_GET
    if method == "POST" and path == "/":
        return TrafficLane.RPC_POST
    return TrafficLane.OTHER_POST if method == "POST" else TrafficLane.OTHER_GET
