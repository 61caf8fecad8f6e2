"""Serialized stats actor, its HTTP service and the clients that reach it."""

from sanctos_edge.stats.actor import (
    InMemoryStatsStorage,
    JsonFileStatsStorage,
    StatsActor,
    StatsStorage,
)
from sanctos_edge.stats.client import HttpStatsClient, LocalStatsClient, StatsClient
from sanctos_edge.stats.models import StatsSnapshot

__all__ = [
    "HttpStatsClient",
    "InMemoryStatsStorage",
    "JsonFileStatsStorage",
    "LocalStatsClient",
    "StatsActor",
    "StatsClient",
    "StatsSnapshot",
    "StatsStorage",
]
