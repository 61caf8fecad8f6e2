"""Response caching layer: keys, per-method policy, storage and SWR."""

from sanctos_edge.cache.keys import compute_key
from sanctos_edge.cache.policy import MethodPolicy, decide_rpc_cache_policy
from sanctos_edge.cache.store import CacheEntry, CacheStore, InMemoryCacheStore
from sanctos_edge.cache.swr import CacheLookup, SwrCache

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheStore",
    "InMemoryCacheStore",
    "MethodPolicy",
    "SwrCache",
    "compute_key",
    "decide_rpc_cache_policy",
]
