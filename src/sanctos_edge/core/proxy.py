from __future__ import annotations

import json
import time
import uuid
from collections.abc import Mapping
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from sanctos_edge.cache.keys import compute_key, normalized_calls, request_methods
from sanctos_edge.cache.policy import MethodPolicy, decide_rpc_cache_policy, response_has_error
from sanctos_edge.cache.store import CacheEntry, CacheStore, InMemoryCacheStore
from sanctos_edge.cache.swr import SwrCache
from sanctos_edge.core.coalescer import InflightCoalescer
from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.constants import (
    HEADER_CACHE,
    HEADER_CACHE_TTL,
    HEADER_CACHED_AT,
    HEADER_UPSTREAM,
    HEADER_UPSTREAM_NAME,
    HEADER_UPSTREAM_STATUS,
    HEADER_WORKER_BUILD,
    WORKER_BUILD,
    CacheLane,
    CacheStatus,
    EntryState,
    TrafficLane,
)
from sanctos_edge.core.exceptions import (
    CacheIntegrityError,
    NoUpstreamAvailableError,
    RpcRequestError,
)
from sanctos_edge.core.types import DispatchResult, RpcReply, UpstreamEndpoint
from sanctos_edge.gateway.dispatcher import UpstreamDispatcher
from sanctos_edge.gateway.indexer import IndexerPassthrough
from sanctos_edge.server.headers import strip_upstream_headers
from sanctos_edge.stats.actor import InMemoryStatsStorage, JsonFileStatsStorage, StatsActor
from sanctos_edge.stats.client import HttpStatsClient, LocalStatsClient, StatsClient
from sanctos_edge.stats.models import CacheEvent, MethodsEvent, TrafficEvent
from sanctos_edge.upstreams.registry import redact_url, resolve_upstreams
from sanctos_edge.utils.async_helpers import BackgroundTasks

logger = structlog.get_logger(__name__)

_JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class _MissOutcome(BaseModel):
    result: DispatchResult
    status: CacheStatus
    ttl: int


def _json_body(obj: Any) -> bytes:
    return json.dumps(obj).encode("utf-8")


class EdgeProxy:
    """One proxy instance: the process-local state every request handler shares.

    Owns the in-flight coalescer, the primary-cooldown clock (inside the
    dispatcher), the SWR cache front, the stats client and the set of
    detached background tasks.  Build it once per process with
    :meth:`from_config` and pass it to the handlers::

        proxy = EdgeProxy.from_config(EdgeConfig.from_env())
        reply = await proxy.handle_rpc(b'{"jsonrpc":"2.0","id":1,"method":"getSlot"}')

    Or use it as an async context manager so clients are closed on exit::

        async with EdgeProxy.from_config(config) as proxy:
            ...
    """

    def __init__(
        self,
        *,
        config: EdgeConfig,
        endpoints: list[UpstreamEndpoint],
        dispatcher: UpstreamDispatcher,
        cache: SwrCache,
        stats: StatsClient,
        coalescer: InflightCoalescer,
        tasks: BackgroundTasks,
        indexer: IndexerPassthrough,
        instance_id: str | None = None,
    ) -> None:
        self.config = config
        self.endpoints = endpoints
        self.dispatcher = dispatcher
        self.cache = cache
        self.stats = stats
        self.coalescer = coalescer
        self.tasks = tasks
        self.indexer = indexer
        self.policy = MethodPolicy(cache_all=config.cache_all, default_ttl=config.default_ttl)
        self.instance_id = instance_id or uuid.uuid4().hex

    @classmethod
    def from_config(
        cls,
        config: EdgeConfig,
        *,
        environ: Mapping[str, str] | None = None,
        cache_store: CacheStore | None = None,
        stats_actor: StatsActor | None = None,
        upstream_transport: httpx.AsyncBaseTransport | None = None,
        stats_transport: httpx.AsyncBaseTransport | None = None,
        indexer_transport: httpx.AsyncBaseTransport | None = None,
        instance_id: str | None = None,
    ) -> EdgeProxy:
        """Wire a proxy from *config*.

        The stats client is remote when ``config.stats_url`` is set, else it
        wraps *stats_actor* (or a new in-process actor persisting to
        ``config.stats_path`` when given).
        """
        tasks = BackgroundTasks()
        coalescer = InflightCoalescer()

        stats: StatsClient
        if config.stats_url and stats_actor is None:
            stats = HttpStatsClient(config.stats_url, tasks, transport=stats_transport)
        else:
            if stats_actor is None:
                storage = (
                    JsonFileStatsStorage(config.stats_path)
                    if config.stats_path
                    else InMemoryStatsStorage()
                )
                stats_actor = StatsActor(storage, keep_days=config.stats_keep_days)
            stats = LocalStatsClient(stats_actor, tasks)

        endpoints = resolve_upstreams(config, environ)
        dispatcher = UpstreamDispatcher(
            endpoints,
            stats=stats,
            cooldown_seconds=config.primary_cooldown,
            timeout=config.upstream_timeout,
            transport=upstream_transport,
        )
        cache = SwrCache(
            cache_store or InMemoryCacheStore(max_size=config.cache_max_entries),
            coalescer,
            tasks,
            swr_window=config.swr_window,
            stale_fallback=config.stale_fallback_on_error,
            fallback_max_age=config.stale_fallback_max_age,
            sync_write=config.cache_sync_write,
        )
        logger.info(
            "edge_proxy_created",
            upstreams=[e.label for e in endpoints],
            cache_all=config.cache_all,
            swr_window=config.swr_window,
            remote_stats=isinstance(stats, HttpStatsClient),
        )
        return cls(
            config=config,
            endpoints=endpoints,
            dispatcher=dispatcher,
            cache=cache,
            stats=stats,
            coalescer=coalescer,
            tasks=tasks,
            indexer=IndexerPassthrough(config, transport=indexer_transport),
            instance_id=instance_id,
        )

    # ------------------------------------------------------------------
    # RPC
    # ------------------------------------------------------------------

    async def handle_rpc(self, body: bytes) -> RpcReply:
        """Serve one JSON-RPC POST body (single call or batch).

        Raises:
            RpcRequestError: If the body is empty or not valid JSON.
        """
        if not body:
            raise RpcRequestError("Empty body")
        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise RpcRequestError("Invalid JSON") from exc

        methods = request_methods(parsed)
        if methods:
            self.stats.record(MethodsEvent(methods=methods, ts=int(time.time() * 1000)))

        if not self.policy.classify(methods):
            return await self._bypass(body, CacheStatus.BYPASS)

        try:
            key = compute_key(parsed)
        except CacheIntegrityError as exc:
            logger.warning("cache_key_failed", error=str(exc))
            return await self._bypass(body, CacheStatus.BYPASS_HASHFAIL)

        try:
            lookup = await self.cache.lookup(key)
        except CacheIntegrityError:
            return await self._bypass(body, CacheStatus.BYPASS_CORRUPT)

        if lookup.entry is not None and lookup.state == EntryState.FRESH:
            self.stats.record(CacheEvent(lane=CacheLane.HIT.value))
            return self._reply_from_entry(lookup.entry, CacheStatus.HIT)

        if lookup.entry is not None and lookup.state == EntryState.STALE:
            self.stats.record(CacheEvent(lane=CacheLane.HIT.value))
            self.cache.schedule_revalidation(
                key, lambda: self._fetch_and_store(key, body, parsed, methods)
            )
            return self._reply_from_entry(lookup.entry, CacheStatus.STALE)

        fallback = self.cache.fallback_for(lookup)

        if not self.coalescer.has(key):
            self.stats.record(CacheEvent(lane=CacheLane.MISS.value))
        try:
            outcome = await self.coalescer.run(
                key, lambda: self._fetch_and_store(key, body, parsed, methods)
            )
        except NoUpstreamAvailableError as exc:
            if fallback is not None:
                logger.warning("stale_fallback_served", key=key[:16], age=round(lookup.age, 1))
                return self._reply_from_entry(fallback, CacheStatus.STALE_FALLBACK)
            return self._error_reply(502, str(exc), CacheStatus.MISS_UPSTREAM_FAIL)

        return self._reply_from_result(
            outcome.result, outcome.status, cache_control=f"public, max-age={outcome.ttl}"
        )

    async def _fetch_and_store(
        self, key: str, body: bytes, parsed: Any, methods: list[str]
    ) -> _MissOutcome:
        """Dispatch upstream and write the answer back if it is cache-eligible.

        Shared by coalesced misses and background revalidations; runs once
        per upstream call regardless of how many callers wait on it.
        """
        result = await self.dispatcher.dispatch(body)
        ttl = self.policy.batch_ttl(methods)

        if result.status != 200:
            return _MissOutcome(result=result, status=CacheStatus.MISS_NOCACHE_HTTPERR, ttl=ttl)
        try:
            parsed_response = json.loads(result.body)
        except ValueError:
            return _MissOutcome(result=result, status=CacheStatus.MISS_NOCACHE_NONJSON, ttl=ttl)
        if response_has_error(parsed_response):
            return _MissOutcome(result=result, status=CacheStatus.MISS_NOCACHE_RPCERROR, ttl=ttl)

        per_call = [call.method for call in normalized_calls(parsed)]
        policy = decide_rpc_cache_policy(per_call, parsed, parsed_response, ttl)
        if not policy.cache:
            return _MissOutcome(result=result, status=CacheStatus.MISS_NOCACHE_POLICY, ttl=ttl)

        entry = self.cache.build_entry(
            status=result.status,
            body=result.body,
            content_type=result.content_type,
            ttl=policy.ttl,
            headers=self._upstream_headers(result),
        )
        await self.cache.write(key, entry)

        status = (
            CacheStatus.MISS_CACHED_SHORT_INCOMPLETE
            if policy.reason == "incomplete_tx"
            else CacheStatus.MISS
        )
        return _MissOutcome(result=result, status=status, ttl=policy.ttl)

    async def _bypass(self, body: bytes, status: CacheStatus) -> RpcReply:
        self.stats.record(CacheEvent(lane=CacheLane.BYPASS.value))
        try:
            result = await self.dispatcher.dispatch(body)
        except NoUpstreamAvailableError as exc:
            return self._error_reply(502, str(exc), CacheStatus.BYPASS_UPSTREAM_FAIL)
        return self._reply_from_result(result, status)

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    @staticmethod
    def _upstream_headers(result: DispatchResult) -> dict[str, str]:
        return {
            HEADER_UPSTREAM: redact_url(result.upstream_url),
            HEADER_UPSTREAM_NAME: result.upstream_label,
            HEADER_UPSTREAM_STATUS: str(result.status),
        }

    def _reply_from_result(
        self, result: DispatchResult, status: CacheStatus, *, cache_control: str | None = None
    ) -> RpcReply:
        headers = strip_upstream_headers(result.headers)
        headers.setdefault("content-type", result.content_type or _JSON_CONTENT_TYPE)
        if cache_control:
            headers["cache-control"] = cache_control
        headers.update(self._upstream_headers(result))
        headers[HEADER_CACHE] = status.value
        headers[HEADER_WORKER_BUILD] = WORKER_BUILD
        return RpcReply(status=result.status, body=result.body, headers=headers)

    @staticmethod
    def _reply_from_entry(entry: CacheEntry, status: CacheStatus) -> RpcReply:
        headers = dict(entry.headers)
        headers["content-type"] = entry.content_type
        if entry.has_meta:
            headers[HEADER_CACHED_AT] = str(entry.cached_at_ms)
            headers[HEADER_CACHE_TTL] = str(entry.ttl_seconds)
        headers[HEADER_CACHE] = status.value
        headers[HEADER_WORKER_BUILD] = WORKER_BUILD
        return RpcReply(status=entry.status, body=entry.body, headers=headers)

    @staticmethod
    def _error_reply(http_status: int, message: str, status: CacheStatus) -> RpcReply:
        return RpcReply(
            status=http_status,
            body=_json_body({"error": message}),
            headers={
                "content-type": _JSON_CONTENT_TYPE,
                HEADER_CACHE: status.value,
                HEADER_WORKER_BUILD: WORKER_BUILD,
            },
        )

    # ------------------------------------------------------------------
    # Stats / health
    # ------------------------------------------------------------------

    def record_traffic(self, lane: TrafficLane, http_method: str) -> None:
        self.stats.record(
            TrafficEvent(lane=lane.value, http_method=http_method, ts=int(time.time() * 1000))
        )

    async def health(self) -> dict[str, Any]:
        """Health document combining the stats snapshot with local diagnostics."""
        snap = await self.stats.snapshot()
        now_ms = int(time.time() * 1000)
        uptime_sec = max(0, (now_ms - (snap.start_time or now_ms)) // 1000)

        stats: dict[str, Any] = {
            "totalRequests": snap.total_requests,
            "totalPostRequests": snap.total_post_requests,
            "cacheHits": snap.cache_hits,
            "cacheMisses": snap.cache_misses,
            "cacheBypass": snap.cache_bypass,
            **self.coalescer.diagnostics(),
            "lastUpstreamOkAt": snap.last_upstream_ok_at,
            "lastUpstreamUrl": redact_url(snap.last_upstream_url) if snap.last_upstream_url else "",
            "lastUpstreamName": snap.last_upstream_name,
            "lastUpstreamStatus": snap.last_upstream_status,
            "lastUpstreamErrorAt": snap.last_upstream_error_at,
            "lastUpstreamError": snap.last_upstream_error,
            "traffic": snap.traffic.to_wire(),
        }
        return {
            "status": "degraded" if snap.degraded else "ok",
            "uptimeSec": uptime_sec,
            "env": {
                "workerBuild": WORKER_BUILD,
                "instance": self.instance_id,
                "cacheAll": self.config.cache_all,
                "defaultTTL": self.config.default_ttl,
                "swrWindow": self.cache.swr_window,
                "staleFallback": self.cache.stale_fallback,
                "staleFallbackMaxAge": self.cache.fallback_max_age,
                "primaryCoolingDown": self.dispatcher.primary_cooling_down,
                "upstreams": [e.label for e in self.endpoints],
                "upstreamUrlsRedacted": [redact_url(e.url) for e in self.endpoints],
                "indexerUrl": self.indexer.base,
                "indexerEnabled": self.indexer.enabled,
            },
            "stats": stats,
            "methods": {
                "today": snap.today,
                "todayCounts": snap.today_counts,
                "allTimeCounts": snap.all_time_counts,
                "byDay": snap.by_day,
            },
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Let detached work finish, then close every HTTP client."""
        await self.tasks.drain()
        await self.dispatcher.close()
        await self.indexer.close()
        await self.stats.close()

    async def __aenter__(self) -> EdgeProxy:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
