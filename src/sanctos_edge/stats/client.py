"""How proxy instances talk to the stats actor.

:class:`LocalStatsClient` calls an in-process :class:`StatsActor`;
:class:`HttpStatsClient` reaches a remote actor served by
:func:`~sanctos_edge.stats.service.create_stats_app`.  Either way a stats
failure never fails the request that produced it.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from sanctos_edge.core.exceptions import StatsUnavailableError
from sanctos_edge.stats.actor import StatsActor
from sanctos_edge.stats.models import StatsEvent, StatsSnapshot
from sanctos_edge.utils.async_helpers import BackgroundTasks

logger = structlog.get_logger(__name__)


def degraded_snapshot(error: str) -> StatsSnapshot:
    """Zeroed snapshot returned when the actor cannot be reached."""
    now_ms = int(time.time() * 1000)
    return StatsSnapshot(
        start_time=now_ms,
        last_upstream_error_at=now_ms,
        last_upstream_error=f"stats_get_failed: {error}",
        degraded=True,
    )


class StatsClient(ABC):
    """Abstract channel to the stats actor.

    Args:
        tasks: Holder for fire-and-forget bumps.
    """

    def __init__(self, tasks: BackgroundTasks) -> None:
        self._tasks = tasks

    @abstractmethod
    async def bump(self, event: StatsEvent) -> None:
        """Deliver *event* to the actor.

        Raises:
            StatsUnavailableError: If the actor could not apply it.
        """

    @abstractmethod
    async def get(self) -> StatsSnapshot:
        """Fetch the actor snapshot.

        Raises:
            StatsUnavailableError: If the actor could not be reached.
        """

    @abstractmethod
    async def ping(self) -> dict[str, Any]:
        """Confirm the actor is reachable."""

    async def close(self) -> None:
        """Release resources held by the client."""

    def record(self, event: StatsEvent) -> None:
        """Fire-and-forget :meth:`bump`; failures are logged and dropped."""
        self._tasks.spawn(self._safe_bump(event), name=f"stats-bump:{event.type}")

    async def _safe_bump(self, event: StatsEvent) -> None:
        try:
            await self.bump(event)
        except StatsUnavailableError as exc:
            logger.warning("stats_bump_failed", event_type=event.type, error=str(exc))

    async def snapshot(self) -> StatsSnapshot:
        """Like :meth:`get`, but degrades to a zeroed snapshot instead of raising."""
        try:
            return await self.get()
        except StatsUnavailableError as exc:
            logger.warning("stats_get_failed", error=str(exc))
            return degraded_snapshot(str(exc))


class LocalStatsClient(StatsClient):
    """Talks to a :class:`StatsActor` living in the same process."""

    def __init__(self, actor: StatsActor, tasks: BackgroundTasks) -> None:
        super().__init__(tasks)
        self.actor = actor

    async def bump(self, event: StatsEvent) -> None:
        try:
            await self.actor.bump(event)
        except OSError as exc:
            raise StatsUnavailableError(f"stats persistence failed: {exc}") from exc

    async def get(self) -> StatsSnapshot:
        try:
            return await self.actor.get()
        except OSError as exc:
            raise StatsUnavailableError(f"stats persistence failed: {exc}") from exc

    async def ping(self) -> dict[str, Any]:
        try:
            return await self.actor.ping()
        except OSError as exc:
            raise StatsUnavailableError(f"stats persistence failed: {exc}") from exc


class HttpStatsClient(StatsClient):
    """Talks to a remote stats actor over HTTP (``/ping``, ``/bump``, ``/get``).

    Args:
        base_url: Base URL of the stats service.
        tasks: Holder for fire-and-forget bumps.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        tasks: BackgroundTasks,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(tasks)
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise StatsUnavailableError(f"stats {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise StatsUnavailableError(
                f"stats {path} HTTP {resp.status_code}", status_code=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise StatsUnavailableError(f"stats {path} returned non-JSON") from exc

    async def bump(self, event: StatsEvent) -> None:
        await self._request("POST", "/bump", json=event.to_wire())

    async def get(self) -> StatsSnapshot:
        data = await self._request("GET", "/get")
        try:
            return StatsSnapshot.model_validate(data)
        except ValueError as exc:
            raise StatsUnavailableError("stats /get returned an invalid snapshot") from exc

    async def ping(self) -> dict[str, Any]:
        return await self._request("GET", "/ping")

    async def close(self) -> None:
        await self._client.aclose()
