from __future__ import annotations

from enum import StrEnum

WORKER_BUILD = "py-edge-v1-2026-10-19"

DEFAULT_UPSTREAMS: tuple[str, ...] = ("https://api.mainnet-beta.solana.com",)

# Upper bound on how long any entry may live in the shared cache store.
MAX_STORE_TTL_SECONDS = 3600

RATE_SLOTS = 60


class CacheStatus(StrEnum):
    """Values of the ``x-sanctos-cache`` response header."""

    HIT = "HIT"
    STALE = "STALE"
    STALE_FALLBACK = "STALE-FALLBACK"
    MISS = "MISS"
    MISS_CACHED_SHORT_INCOMPLETE = "MISS-CACHED-SHORT-INCOMPLETE"
    MISS_NOCACHE_RPCERROR = "MISS-NOCACHE-RPCERROR"
    MISS_NOCACHE_POLICY = "MISS-NOCACHE-POLICY"
    MISS_NOCACHE_NONJSON = "MISS-NOCACHE-NONJSON"
    MISS_NOCACHE_HTTPERR = "MISS-NOCACHE-HTTPERR"
    MISS_UPSTREAM_FAIL = "MISS-UPSTREAM-FAIL"
    BYPASS = "BYPASS"
    BYPASS_HASHFAIL = "BYPASS-HASHFAIL"
    BYPASS_CORRUPT = "BYPASS-CORRUPT"
    BYPASS_UPSTREAM_FAIL = "BYPASS-UPSTREAM-FAIL"


class EntryState(StrEnum):
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


class TrafficLane(StrEnum):
    DASH_GET = "dashGet"
    HEALTH_GET = "healthGet"
    INDEXER_GET = "indexerGet"
    INDEXER_POST = "indexerPost"
    RPC_POST = "rpcPost"
    OTHER_GET = "otherGet"
    OTHER_POST = "otherPost"


class CacheLane(StrEnum):
    HIT = "hit"
    MISS = "miss"
    BYPASS = "bypass"


# Response headers
HEADER_CACHE = "x-sanctos-cache"
HEADER_UPSTREAM = "x-sanctos-upstream"
HEADER_UPSTREAM_NAME = "x-sanctos-upstream-name"
HEADER_UPSTREAM_STATUS = "x-sanctos-upstream-status"
HEADER_WORKER_BUILD = "x-sanctos-worker-build"
HEADER_INSTANCE = "x-sanctos-instance"
HEADER_INDEXER = "x-sanctos-indexer"
HEADER_INDEXER_STATUS = "x-sanctos-indexer-status"
HEADER_CACHED_AT = "x-sanctos-cached-at"
HEADER_CACHE_TTL = "x-sanctos-cache-ttl"
HEADER_HEALTH = "x-sanctos-health"
HEADER_INTERNAL = "x-sanctos-internal"

DEFAULT_EXPOSE_HEADERS: tuple[str, ...] = (
    HEADER_CACHE,
    HEADER_UPSTREAM_NAME,
    HEADER_UPSTREAM_STATUS,
    HEADER_UPSTREAM,
    HEADER_WORKER_BUILD,
    HEADER_INSTANCE,
    HEADER_INDEXER,
    HEADER_INDEXER_STATUS,
    HEADER_CACHED_AT,
    HEADER_CACHE_TTL,
)
