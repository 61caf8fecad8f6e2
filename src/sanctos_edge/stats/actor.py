"""Single-writer stats actor and its persistence backends.

One :class:`StatsActor` exists per deployment.  Every mutation runs under
one lock and persists the full state before returning, so all bumps are
totally ordered no matter how many proxy instances send them.
"""

from __future__ import annotations

import asyncio
import os
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from sanctos_edge.core.constants import TrafficLane
from sanctos_edge.stats.buckets import RateBucket
from sanctos_edge.stats.models import (
    CacheEvent,
    MethodsEvent,
    StatsEvent,
    StatsSnapshot,
    StatsState,
    TrafficEvent,
    TrafficView,
    UpstreamEvent,
)

logger = structlog.get_logger(__name__)

_CACHE_COUNTERS = {"hit": "cache_hits", "miss": "cache_misses", "bypass": "cache_bypass"}


def day_key(ts_ms: float) -> str:
    """UTC calendar day (``YYYY-MM-DD``) of a millisecond timestamp."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StatsStorage(ABC):
    """Durable home of the actor state."""

    @abstractmethod
    async def load(self) -> StatsState | None:
        """Return the persisted state, or ``None`` if nothing was saved yet."""

    @abstractmethod
    async def save(self, state: StatsState) -> None:
        """Persist *state* in full."""


class InMemoryStatsStorage(StatsStorage):
    """Keeps a serialized copy in memory; survives actor re-creation, not restarts."""

    def __init__(self) -> None:
        self._raw: str | None = None
        self.saves = 0

    async def load(self) -> StatsState | None:
        if self._raw is None:
            return None
        return StatsState.model_validate_json(self._raw)

    async def save(self, state: StatsState) -> None:
        self._raw = state.model_dump_json(by_alias=True)
        self.saves += 1


class JsonFileStatsStorage(StatsStorage):
    """Stores the state as one JSON document, replaced atomically on each save.

    Uses :func:`asyncio.to_thread` so file I/O does not block the event
    loop.

    Args:
        path: Filesystem path of the JSON document.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def _read_sync(self) -> str | None:
        if not self._path.exists():
            return None
        return self._path.read_text(encoding="utf-8")

    def _write_sync(self, data: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(data, encoding="utf-8")
        os.replace(tmp, self._path)

    async def load(self) -> StatsState | None:
        raw = await asyncio.to_thread(self._read_sync)
        if not raw:
            return None
        try:
            return StatsState.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("stats_state_unreadable", path=str(self._path), error=str(exc))
            return None

    async def save(self, state: StatsState) -> None:
        await asyncio.to_thread(self._write_sync, state.model_dump_json(by_alias=True))


# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------


class StatsActor:
    """Serialized aggregate counter store.

    Args:
        storage: Persistence backend (defaults to :class:`InMemoryStatsStorage`).
        keep_days: Number of most recent days kept in ``methods_by_day``.
    """

    def __init__(self, storage: StatsStorage | None = None, *, keep_days: int = 10) -> None:
        self._storage = storage or InMemoryStatsStorage()
        self._keep_days = keep_days
        self._state: StatsState | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> StatsState:
        if self._state is not None:
            return self._state
        state = await self._storage.load()
        if state is None:
            state = StatsState(start_time=int(time.time() * 1000))
            await self._storage.save(state)
            logger.info("stats_state_initialized")
        self._state = state
        return state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ping(self) -> dict[str, Any]:
        async with self._lock:
            state = await self._load()
        return {"ok": True, "class": type(self).__name__, "hasState": True, "startTime": state.start_time}

    async def bump(self, event: StatsEvent) -> None:
        """Apply *event* and persist the resulting state before returning."""
        async with self._lock:
            state = await self._load()
            now_ms = int(time.time() * 1000)

            if isinstance(event, TrafficEvent):
                self._apply_traffic(state, event, now_ms)
            elif isinstance(event, CacheEvent):
                field = _CACHE_COUNTERS[event.lane]
                setattr(state, field, getattr(state, field) + event.n)
            elif isinstance(event, MethodsEvent):
                self._apply_methods(state, event, now_ms)
            elif isinstance(event, UpstreamEvent):
                self._apply_upstream(state, event, now_ms)

            await self._storage.save(state)

    async def get(self) -> StatsSnapshot:
        async with self._lock:
            state = await self._load()
            now_ms = int(time.time() * 1000)
            return self._snapshot(state, now_ms)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_traffic(state: StatsState, event: TrafficEvent, now_ms: int) -> None:
        state.total_requests += 1
        if event.http_method.upper() == "POST":
            state.total_post_requests += 1

        lane = event.lane or TrafficLane.OTHER_GET.value
        traffic = state.traffic
        traffic.totals[lane] = traffic.totals.get(lane, 0) + 1
        traffic.rates.setdefault(lane, RateBucket()).bump(now_ms // 1000)

    def _apply_methods(self, state: StatsState, event: MethodsEvent, now_ms: int) -> None:
        day = day_key(event.ts or now_ms)
        per_day = state.methods_by_day.setdefault(day, {})
        for raw in event.methods:
            method = str(raw or "").strip()
            if not method:
                continue
            state.methods_all_time[method] = state.methods_all_time.get(method, 0) + 1
            per_day[method] = per_day.get(method, 0) + 1

        for old in sorted(state.methods_by_day)[: -self._keep_days]:
            del state.methods_by_day[old]

    @staticmethod
    def _apply_upstream(state: StatsState, event: UpstreamEvent, now_ms: int) -> None:
        state.last_upstream_url = event.url
        state.last_upstream_status = event.status
        state.last_upstream_name = event.name or state.last_upstream_name
        if event.ok:
            state.last_upstream_ok_at = event.ts or now_ms
            state.last_upstream_error = ""
        else:
            state.last_upstream_error_at = event.ts or now_ms
            state.last_upstream_error = event.err or f"HTTP {event.status}"

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @staticmethod
    def _snapshot(state: StatsState, now_ms: int) -> StatsSnapshot:
        now_sec = now_ms // 1000
        lanes = [lane.value for lane in TrafficLane]
        lanes += [lane for lane in state.traffic.rates if lane not in lanes]

        view = TrafficView()
        for lane in lanes:
            bucket = state.traffic.rates.get(lane) or RateBucket()
            view.totals[lane] = state.traffic.totals.get(lane, 0)
            view.last60[lane] = bucket.sum_last60(now_sec)
            view.series60[lane] = bucket.series_last60(now_sec)

        today = day_key(now_ms)
        return StatsSnapshot(
            start_time=state.start_time,
            total_requests=state.total_requests,
            total_post_requests=state.total_post_requests,
            cache_hits=state.cache_hits,
            cache_misses=state.cache_misses,
            cache_bypass=state.cache_bypass,
            last_upstream_ok_at=state.last_upstream_ok_at,
            last_upstream_url=state.last_upstream_url,
            last_upstream_name=state.last_upstream_name,
            last_upstream_status=state.last_upstream_status,
            last_upstream_error_at=state.last_upstream_error_at,
            last_upstream_error=state.last_upstream_error,
            traffic=view,
            today=today,
            today_counts=dict(state.methods_by_day.get(today, {})),
            all_time_counts=dict(state.methods_all_time),
            by_day={day: dict(counts) for day, counts in state.methods_by_day.items()},
        )
