"""Deterministic cache keys for JSON-RPC requests.

Each call is reduced to ``{method, params}``; array order is kept, object
keys are sorted, and the canonical JSON text is hashed with SHA-256.  Two
requests that differ only in ``id``/``jsonrpc`` or object key order map to
the same key.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from sanctos_edge.core.exceptions import CacheIntegrityError
from sanctos_edge.core.types import RpcCall


def as_call_list(parsed: Any) -> list[Any]:
    """Return the raw calls of a body that is either one call or a batch."""
    return list(parsed) if isinstance(parsed, list) else [parsed]


def normalized_calls(parsed: Any) -> list[RpcCall]:
    return [RpcCall.from_raw(raw) for raw in as_call_list(parsed)]


def request_methods(parsed: Any) -> list[str]:
    """Method names of every call that has a non-empty string method."""
    return [call.method for call in normalized_calls(parsed) if call.method]


def canonical_json(value: Any) -> str:
    """Serialize *value* with sorted object keys and no insignificant whitespace."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
    )


def compute_key(parsed: Any) -> str:
    """Compute the hex SHA-256 cache key of a decoded request body.

    Raises:
        CacheIntegrityError: If the body cannot be canonicalised.
    """
    try:
        raw = canonical_json([call.model_dump() for call in normalized_calls(parsed)])
    except (TypeError, ValueError) as exc:
        raise CacheIntegrityError(f"Unable to hash request: {exc}", code="HASH_FAILED") from exc
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
