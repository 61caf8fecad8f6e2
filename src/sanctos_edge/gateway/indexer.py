from __future__ import annotations

from collections.abc import Mapping

import httpx
import structlog

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.constants import (
    HEADER_INDEXER,
    HEADER_INDEXER_STATUS,
    HEADER_WORKER_BUILD,
    WORKER_BUILD,
)
from sanctos_edge.core.exceptions import IndexerError, IndexerTimeoutError
from sanctos_edge.core.types import RpcReply
from sanctos_edge.server.headers import strip_upstream_headers
from sanctos_edge.utils.async_helpers import with_timeout

logger = structlog.get_logger(__name__)

# Cookies and credentials are never forwarded.
FORWARDED_HEADERS = frozenset({"accept", "content-type", "user-agent"})

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def pick_forward_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items() if k.lower() in FORWARDED_HEADERS}


class IndexerPassthrough:
    """Strict allow-listed forwarding of ``/indexer/*`` to a separate base URL.

    Args:
        config: Supplies base URL, enabled flag, timeout and allow-lists.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self, config: EdgeConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(transport=transport, timeout=None)

    @property
    def base(self) -> str:
        return self._config.indexer_base

    @property
    def enabled(self) -> bool:
        return self._config.is_indexer_enabled

    @property
    def timeout_seconds(self) -> float:
        return self._config.indexer_timeout_ms / 1000.0

    def method_allowed(self, method: str) -> bool:
        return method.upper() in {m.upper() for m in self._config.indexer_allowed_methods}

    def path_allowed(self, rest: str) -> bool:
        allowed = self._config.indexer_allowed_paths
        return not allowed or rest in allowed

    async def forward(
        self,
        method: str,
        rest: str,
        query: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> RpcReply:
        """Forward one request; checks of enabled/method/path are the caller's job.

        Raises:
            IndexerTimeoutError: If the indexer does not answer in time or
                cannot be reached.
        """
        target = self.base + (rest or "/") + (f"?{query}" if query else "")
        method = method.upper()

        async def _send() -> httpx.Response:
            return await self._client.request(
                method,
                target,
                headers=pick_forward_headers(headers),
                content=body if method in _BODY_METHODS else None,
            )

        try:
            resp = await with_timeout(_send(), self.timeout_seconds)
        except TimeoutError as exc:
            logger.warning("indexer_timeout", target=target, timeout=self.timeout_seconds)
            raise IndexerTimeoutError(details={"base": self.base}) from exc
        except httpx.HTTPError as exc:
            logger.warning("indexer_transport_error", target=target, error=str(exc))
            raise IndexerTimeoutError(
                "Indexer upstream error", details={"base": self.base, "error": str(exc)}
            ) from exc

        out_headers = strip_upstream_headers(resp.headers)
        out_headers[HEADER_INDEXER] = self.base
        out_headers[HEADER_INDEXER_STATUS] = str(resp.status_code)
        out_headers[HEADER_WORKER_BUILD] = WORKER_BUILD
        return RpcReply(status=resp.status_code, body=resp.content, headers=out_headers)

    def failure_reply(self, exc: IndexerError) -> RpcReply:
        return RpcReply(
            status=exc.status_code or 504,
            body=b"Indexer upstream error",
            headers={
                "content-type": "text/plain; charset=utf-8",
                HEADER_INDEXER: self.base,
                HEADER_INDEXER_STATUS: "timeout_or_error",
                HEADER_WORKER_BUILD: WORKER_BUILD,
            },
        )

    async def close(self) -> None:
        await self._client.aclose()
