"""SanctOS RPC edge node: a caching JSON-RPC reverse proxy for Solana."""

__version__ = "1.0.0"

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.constants import WORKER_BUILD, CacheStatus, TrafficLane
from sanctos_edge.core.exceptions import (
    CacheIntegrityError,
    ConfigurationError,
    IndexerError,
    IndexerTimeoutError,
    NoUpstreamAvailableError,
    RpcRequestError,
    SanctosError,
    StatsUnavailableError,
    UpstreamError,
)
from sanctos_edge.core.proxy import EdgeProxy
from sanctos_edge.server.app import create_app

__all__ = [
    "CacheIntegrityError",
    "CacheStatus",
    "ConfigurationError",
    "EdgeConfig",
    "EdgeProxy",
    "IndexerError",
    "IndexerTimeoutError",
    "NoUpstreamAvailableError",
    "RpcRequestError",
    "SanctosError",
    "StatsUnavailableError",
    "TrafficLane",
    "UpstreamError",
    "WORKER_BUILD",
    "__version__",
    "create_app",
]
