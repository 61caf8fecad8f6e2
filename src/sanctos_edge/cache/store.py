"""Shared response store: cache entries and the byte-level key/value backend.

Provides :class:`CacheEntry` (a serialized HTTP response plus write
metadata), :class:`CacheStore` (abstract byte store) and
:class:`InMemoryCacheStore` (default implementation backed by
:class:`collections.OrderedDict`).
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sanctos_edge.core.exceptions import CacheIntegrityError

_SEPARATOR = b"\n"


class _EntryMeta(BaseModel):
    status: int
    content_type: str
    headers: dict[str, str] = Field(default_factory=dict)
    cached_at_ms: int | None = None
    ttl_seconds: int | None = None


class CacheEntry(BaseModel):
    """A cached upstream response.

    Entries are immutable: a revalidation replaces the whole entry.  Entries
    without ``cached_at_ms``/``ttl_seconds`` are served as fresh.
    """

    model_config = ConfigDict(frozen=True)

    status: int
    content_type: str = "application/json; charset=utf-8"
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
    cached_at_ms: int | None = None
    ttl_seconds: int | None = None

    @property
    def has_meta(self) -> bool:
        return bool(self.cached_at_ms) and bool(self.ttl_seconds)

    def age_seconds(self, now_ms: float) -> float:
        if not self.cached_at_ms:
            return 0.0
        return (now_ms - self.cached_at_ms) / 1000.0

    def to_bytes(self) -> bytes:
        """Serialize as one JSON metadata line followed by the raw body."""
        meta = _EntryMeta(
            status=self.status,
            content_type=self.content_type,
            headers=self.headers,
            cached_at_ms=self.cached_at_ms,
            ttl_seconds=self.ttl_seconds,
        )
        return meta.model_dump_json().encode("utf-8") + _SEPARATOR + self.body

    @classmethod
    def from_bytes(cls, raw: bytes) -> CacheEntry:
        """Decode a value written by :meth:`to_bytes`.

        Raises:
            CacheIntegrityError: If the metadata line is missing or malformed.
        """
        head, sep, body = raw.partition(_SEPARATOR)
        if not sep:
            raise CacheIntegrityError("Cache entry has no metadata line", code="BAD_ENTRY")
        try:
            meta = _EntryMeta.model_validate_json(head)
        except ValidationError as exc:
            raise CacheIntegrityError(
                "Cache entry metadata is malformed", code="BAD_ENTRY", details={"error": str(exc)}
            ) from exc
        return cls(body=body, **meta.model_dump())


class CacheStore(ABC):
    """Abstract key/value byte store shared by the proxy.

    Subclass this to plug in Redis, disk, or any other backend.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the stored value, or ``None`` on miss / eviction."""

    @abstractmethod
    async def put(self, key: str, value: bytes, ttl_seconds: float) -> None:
        """Store *value* under *key* for at most *ttl_seconds*."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key* if present."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all entries from the store."""


class InMemoryCacheStore(CacheStore):
    """LRU byte store with per-entry TTL, backed by :class:`collections.OrderedDict`.

    Args:
        max_size: Maximum number of entries before the least recently used
            one is evicted (default 10 000).
    """

    def __init__(self, max_size: int = 10000) -> None:
        self._max_size = max_size
        # Stores (expires_at, value) tuples, ordered by access time.
        self._store: OrderedDict[str, Tuple[float, bytes]] = OrderedDict()

    async def get(self, key: str) -> bytes | None:
        entry = self._store.get(key)
        if entry is None:
            return None

        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._store[key]
            return None

        self._store.move_to_end(key)
        return value

    async def put(self, key: str, value: bytes, ttl_seconds: float) -> None:
        if key in self._store:
            del self._store[key]

        self._store[key] = (time.monotonic() + ttl_seconds, value)

        while len(self._store) > self._max_size:
            self._store.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self) -> None:
        self._store.clear()

    @property
    def size(self) -> int:
        return len(self._store)
