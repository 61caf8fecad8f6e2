from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RpcCall(BaseModel):
    """One JSON-RPC call reduced to the fields that determine its result.

    Caller-supplied ``id`` and ``jsonrpc`` are intentionally not part of
    this model.
    """

    method: str = ""
    params: Any = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> RpcCall:
        """Build an :class:`RpcCall` from an arbitrary decoded JSON value.

        Non-object values and non-string methods become an empty method;
        a missing ``params`` key becomes ``[]`` while an explicit ``null``
        is preserved.
        """
        if not isinstance(raw, dict):
            return cls()
        method = raw.get("method")
        return cls(
            method=method if isinstance(method, str) else "",
            params=raw["params"] if "params" in raw else [],
        )


class UpstreamEndpoint(BaseModel):
    """An upstream RPC provider; index 0 of the resolved list is the primary."""

    url: str
    label: str


class CachePolicy(BaseModel):
    """Outcome of :func:`~sanctos_edge.cache.policy.decide_rpc_cache_policy`."""

    cache: bool
    ttl: int = 0
    reason: str = "ok"


class DispatchResult(BaseModel):
    """A fully read upstream response together with where it came from."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str = "application/json; charset=utf-8"
    upstream_url: str
    upstream_label: str
    ok: bool
    fallback_used: bool = False
    """``True`` when the answer came from an endpoint other than the primary."""


class RpcReply(BaseModel):
    """Transport-neutral response produced by the RPC handler."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
