"""Method classification and response-driven cache policy.

The method tables are plain lookups: a method is either a write, a
sensitive read, a read with a known TTL, or unknown (cacheable only in
cache-all mode, with the configured default TTL).
"""

from __future__ import annotations

from typing import Any

from sanctos_edge.cache.keys import as_call_list
from sanctos_edge.core.types import CachePolicy

WRITE_METHODS: frozenset[str] = frozenset(
    {
        "sendTransaction",
        "sendRawTransaction",
        "simulateTransaction",
        "requestAirdrop",
    }
)

SENSITIVE_METHODS: frozenset[str] = frozenset({"getLatestBlockhash", "getSignatureStatuses"})

BYPASS_METHODS: frozenset[str] = WRITE_METHODS | SENSITIVE_METHODS

TX_LOOKUP_METHODS: frozenset[str] = frozenset({"getTransaction", "getParsedTransaction"})

# Fresh lifetime in seconds per cacheable read method.
METHOD_TTLS: dict[str, int] = {
    "getBlockHeight": 8,
    "getSlot": 8,
    "getSignaturesForAddress": 2,
    "getTransaction": 60 * 60 * 24 * 3,
    "getParsedTransaction": 60 * 60 * 24 * 3,
    "getAccountInfo": 2,
    "getMultipleAccounts": 6,
    "getProgramAccounts": 5,
    "getBalance": 6,
    "getTokenAccountsByOwner": 10,
}

# A transaction that is not indexed yet must not be negatively cached for long.
INCOMPLETE_TX_TTL = 1


class MethodPolicy:
    """Decides which methods may be cached and for how long.

    Args:
        cache_all: Cache every non-bypass method, using *default_ttl* for
            methods missing from :data:`METHOD_TTLS`.
        default_ttl: TTL in seconds for unknown methods in cache-all mode.
    """

    def __init__(self, cache_all: bool = False, default_ttl: int = 2) -> None:
        self.cache_all = cache_all
        self.default_ttl = default_ttl

    def ttl_for(self, method: str) -> int:
        """Return the fresh TTL of *method*; ``0`` means never cache."""
        if not method or method in BYPASS_METHODS:
            return 0
        if method in METHOD_TTLS:
            return METHOD_TTLS[method]
        return self.default_ttl if self.cache_all else 0

    def is_cacheable(self, method: Any) -> bool:
        return isinstance(method, str) and self.ttl_for(method) > 0

    def classify(self, methods: list[str]) -> bool:
        """A batch is cacheable only if it is non-empty and every call is."""
        return bool(methods) and all(self.is_cacheable(m) for m in methods)

    def batch_ttl(self, methods: list[str]) -> int:
        """Minimum TTL across *methods*; ``0`` if any of them is uncacheable."""
        ttls = [self.ttl_for(m) for m in methods]
        if not ttls or min(ttls) <= 0:
            return 0
        return min(ttls)


def response_has_error(parsed_response: Any) -> bool:
    """``True`` if any item of a (batch) response is missing or carries ``error``."""
    for item in as_call_list(parsed_response):
        if not isinstance(item, dict) or item.get("error"):
            return True
    return False


def _match_responses(requests: list[Any], responses: list[Any]) -> list[Any]:
    """Pair each request with its response, by ``id`` when possible, else by position."""
    by_id: dict[str, Any] = {}
    for item in responses:
        if isinstance(item, dict) and item.get("id") is not None:
            by_id[repr(item["id"])] = item

    paired: list[Any] = []
    for i, req in enumerate(requests):
        req_id = req.get("id") if isinstance(req, dict) else None
        if req_id is not None and repr(req_id) in by_id:
            paired.append(by_id[repr(req_id)])
        elif i < len(responses):
            paired.append(responses[i])
        else:
            paired.append(None)
    return paired


def decide_rpc_cache_policy(
    methods: list[str],
    parsed_request: Any,
    parsed_response: Any,
    base_ttl: int,
) -> CachePolicy:
    """Decide whether an upstream answer may be cached, and for how long.

    * Any ``error`` in any response item makes the whole batch uncacheable
      (``reason="rpc_error"``).
    * A *base_ttl* of zero makes the batch uncacheable (``"ttl_zero"``).
    * A transaction lookup that returned a null/absent result caps the TTL
      at one second (``"incomplete_tx"``).

    Args:
        methods: Method names of the request calls, in request order.
        parsed_request: Decoded request body (object or batch).
        parsed_response: Decoded upstream response body.
        base_ttl: Batch TTL from :meth:`MethodPolicy.batch_ttl`.
    """
    requests = as_call_list(parsed_request)
    responses = as_call_list(parsed_response)

    if response_has_error(parsed_response):
        return CachePolicy(cache=False, ttl=0, reason="rpc_error")
    if base_ttl <= 0:
        return CachePolicy(cache=False, ttl=0, reason="ttl_zero")

    ttl = base_ttl
    reason = "ok"
    for i, res in enumerate(_match_responses(requests, responses)):
        req = requests[i]
        method = methods[i] if i < len(methods) else ""
        if not method and isinstance(req, dict):
            method = str(req.get("method") or "")
        if method in TX_LOOKUP_METHODS and (res is None or res.get("result") is None):
            ttl = min(ttl, INCOMPLETE_TX_TTL)
            reason = "incomplete_tx"

    return CachePolicy(cache=True, ttl=ttl, reason=reason)
