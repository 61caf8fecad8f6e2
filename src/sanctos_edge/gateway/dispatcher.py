from __future__ import annotations

import time

import httpx
import structlog

from sanctos_edge.core.exceptions import (
    AuthRejectionError,
    ConfigurationError,
    NoUpstreamAvailableError,
    ThrottleError,
    TransportError,
    UpstreamError,
)
from sanctos_edge.core.types import DispatchResult, UpstreamEndpoint
from sanctos_edge.stats.client import StatsClient
from sanctos_edge.stats.models import UpstreamEvent
from sanctos_edge.upstreams.registry import redact_url

logger = structlog.get_logger(__name__)

_THROTTLE_STATUSES = frozenset({429, 503})
_AUTH_STATUSES = frozenset({401, 403})

# The body is re-encoded by the proxy, so framing headers must not be copied.
_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "transfer-encoding",
        "content-encoding",
        "content-length",
        "upgrade",
    }
)


def describe_failure(exc: UpstreamError) -> dict[str, object]:
    """JSON-friendly summary of one failed attempt."""
    return {
        "upstream": exc.details.get("upstream", ""),
        "kind": exc.code,
        "error": str(exc),
        "retryable": exc.is_retryable,
    }


class UpstreamDispatcher:
    """Sends a JSON-RPC body to the first upstream that answers usefully.

    Walks the endpoint list in order, starting at index 1 while the primary
    is cooling down after a throttle.  Transport errors and fallback 401/403
    answers are skipped; a 2xx answer wins immediately; any other answer is
    kept and returned only if nothing better follows.

    Args:
        endpoints: Ordered upstreams; index 0 is the primary.
        stats: Where each attempt is reported (optional).
        cooldown_seconds: How long the primary is skipped after a 429/503.
        timeout: Per-attempt HTTP timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        endpoints: list[UpstreamEndpoint],
        *,
        stats: StatsClient | None = None,
        cooldown_seconds: float = 30.0,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoints:
            raise ConfigurationError("At least one upstream endpoint is required")
        self.endpoints = list(endpoints)
        self._stats = stats
        self._cooldown_seconds = cooldown_seconds
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.primary_cooldown_until: float = 0.0

    # ------------------------------------------------------------------ #
    # Cooldown
    # ------------------------------------------------------------------ #

    @property
    def primary_cooling_down(self) -> bool:
        return time.time() < self.primary_cooldown_until

    def start_index(self) -> int:
        if len(self.endpoints) > 1 and self.primary_cooling_down:
            return 1
        return 0

    def _trip_primary(self, status: int) -> None:
        self.primary_cooldown_until = time.time() + self._cooldown_seconds
        logger.warning(
            "primary_cooldown_set",
            status=status,
            cooldown_seconds=self._cooldown_seconds,
            upstream=self.endpoints[0].url,
        )

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def dispatch(self, body: bytes) -> DispatchResult:
        """POST *body* to the upstreams and return the chosen answer.

        Raises:
            NoUpstreamAvailableError: If no endpoint produced a response
                that may be shown to the caller.
        """
        candidate: DispatchResult | None = None
        failures: list[UpstreamError] = []

        for index in range(self.start_index(), len(self.endpoints)):
            endpoint = self.endpoints[index]
            is_primary = index == 0
            try:
                resp = await self._client.post(
                    endpoint.url,
                    content=body,
                    headers={"content-type": "application/json"},
                )
            except httpx.HTTPError as exc:
                error = str(exc) or type(exc).__name__
                failures.append(
                    TransportError(
                        f"{endpoint.label}: {error}",
                        code="UPSTREAM_TRANSPORT",
                        details={"upstream": endpoint.label},
                    )
                )
                self._report(endpoint, ok=False, status=0, err=error)
                logger.info("upstream_transport_error", upstream=endpoint.url, error=error)
                continue

            status = resp.status_code
            ok = resp.is_success
            self._report(endpoint, ok=ok, status=status, err="" if ok else f"HTTP {status}")

            if not is_primary and status in _AUTH_STATUSES:
                logger.info("upstream_auth_rejected", upstream=endpoint.url, status=status)
                failures.append(
                    AuthRejectionError(
                        f"{endpoint.label}: HTTP {status}",
                        code="UPSTREAM_AUTH",
                        details={"upstream": endpoint.label},
                        status_code=status,
                    )
                )
                continue

            result = DispatchResult(
                status=status,
                body=resp.content,
                headers={
                    k.lower(): v for k, v in resp.headers.items() if k.lower() not in _HOP_BY_HOP
                },
                content_type=resp.headers.get("content-type", "application/json; charset=utf-8"),
                upstream_url=endpoint.url,
                upstream_label=endpoint.label,
                ok=ok,
                fallback_used=not is_primary,
            )

            if ok:
                if not is_primary:
                    logger.info(
                        "upstream_fallback_used",
                        upstream=endpoint.url,
                        upstream_name=endpoint.label,
                        index=index,
                    )
                return result

            if is_primary and status in _THROTTLE_STATUSES:
                self._trip_primary(status)
                failures.append(
                    ThrottleError(
                        f"{endpoint.label}: HTTP {status}",
                        code="UPSTREAM_THROTTLED",
                        details={"upstream": endpoint.label},
                        status_code=status,
                    )
                )
            candidate = result

        if candidate is not None:
            return candidate
        raise NoUpstreamAvailableError(
            details={"attempts": [describe_failure(f) for f in failures]}
        )

    def _report(self, endpoint: UpstreamEndpoint, *, ok: bool, status: int, err: str) -> None:
        if self._stats is None:
            return
        self._stats.record(
            UpstreamEvent(
                ok=ok,
                url=redact_url(endpoint.url),
                name=endpoint.label,
                status=status,
                err=err,
                ts=int(time.time() * 1000),
            )
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
