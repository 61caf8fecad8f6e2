from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field

from sanctos_edge.core.constants import DEFAULT_EXPOSE_HEADERS, DEFAULT_UPSTREAMS


def parse_csv(value: str | None) -> list[str]:
    """Split a comma-separated env value, dropping blanks."""
    return [part.strip() for part in str(value or "").split(",") if part.strip()]


def truthy(value: str | None) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _number(value: str | None, default: float, *, zero_is_unset: bool = False) -> float:
    """Parse a numeric env value; NaN, infinities and junk give *default*.

    With *zero_is_unset*, an explicit ``0`` also gives *default*.
    """
    try:
        n = float(str(value))
    except (TypeError, ValueError):
        return default
    if n != n or n in (float("inf"), float("-inf")):
        return default
    if zero_is_unset and n == 0:
        return default
    return n


class EdgeConfig(BaseModel):
    """Runtime configuration of one edge node deployment."""

    upstreams: list[str] = Field(default_factory=lambda: list(DEFAULT_UPSTREAMS))
    upstream_secret_keys: list[str] = Field(default_factory=list)
    """Names of environment variables holding upstream URLs (preferred over ``upstreams``)."""
    upstream_aliases: list[str] = Field(default_factory=list)
    upstream_timeout: float = Field(default=15.0, gt=0)
    primary_cooldown: float = Field(default=30.0, ge=0)

    cache_all: bool = False
    default_ttl: int = Field(default=2, ge=0)
    swr_window: int = Field(default=60, ge=0)
    stale_fallback_on_error: bool = True
    stale_fallback_max_age: int = Field(default=3600, ge=0)
    """Oldest entry age, in seconds, that may still be served as ``STALE-FALLBACK``."""
    cache_sync_write: bool = False
    cache_max_entries: int = Field(default=10000, ge=1)

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    expose_headers: list[str] = Field(default_factory=lambda: list(DEFAULT_EXPOSE_HEADERS))

    indexer_url: str = ""
    indexer_enabled: bool | None = None
    """``None`` means enabled iff ``indexer_url`` is set."""
    indexer_timeout_ms: int = Field(default=2500, ge=250)
    indexer_allowed_methods: list[str] = Field(default_factory=lambda: ["GET", "HEAD", "OPTIONS"])
    indexer_allowed_paths: list[str] = Field(default_factory=list)

    stats_url: str = ""
    """Base URL of a remote stats actor; empty runs the actor in-process."""
    stats_path: str = ""
    """JSON file the in-process stats actor persists to; empty keeps it in memory."""
    stats_keep_days: int = Field(default=10, ge=1)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = True

    @property
    def indexer_base(self) -> str:
        return self.indexer_url.strip().rstrip("/")

    @property
    def is_indexer_enabled(self) -> bool:
        if self.indexer_enabled is not None:
            return self.indexer_enabled
        return bool(self.indexer_base)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EdgeConfig:
        """Create an :class:`EdgeConfig` from environment variables.

        Reads (all optional):

        * ``UPSTREAMS`` (csv), ``UPSTREAM_SECRET_KEYS`` (csv of env names),
          ``UPSTREAM_ALIASES`` (csv), ``SANCTOS_UPSTREAM_TIMEOUT``,
          ``SANCTOS_PRIMARY_COOLDOWN``
        * ``SANCTOS_CACHE_ALL``, ``SANCTOS_DEFAULT_TTL``, ``SANCTOS_STALE_WINDOW``,
          ``SANCTOS_STALE_FALLBACK_ON_ERROR``, ``SANCTOS_STALE_FALLBACK_MAX_AGE``,
          ``SANCTOS_CACHE_SYNC_WRITE``
        * ``ALLOW_ORIGINS``, ``EXPOSE_HEADERS``
        * ``INDEXER_URL``, ``INDEXER_ENABLED``, ``INDEXER_TIMEOUT_MS``,
          ``INDEXER_ALLOWED_METHODS``, ``INDEXER_ALLOWED_PATHS``
        * ``SANCTOS_STATS_URL``, ``SANCTOS_STATS_PATH``, ``SANCTOS_STATS_KEEP_DAYS``
        * ``SANCTOS_LOG_LEVEL``, ``SANCTOS_LOG_JSON``

        Unset or empty variables keep their defaults; unparseable numbers
        fall back to the default as well.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        upstreams = parse_csv(env.get("UPSTREAMS"))
        if upstreams:
            kwargs["upstreams"] = upstreams
        secret_keys = parse_csv(env.get("UPSTREAM_SECRET_KEYS"))
        if secret_keys:
            kwargs["upstream_secret_keys"] = secret_keys
        aliases = parse_csv(env.get("UPSTREAM_ALIASES"))
        if aliases:
            kwargs["upstream_aliases"] = aliases

        kwargs["upstream_timeout"] = _number(
            env.get("SANCTOS_UPSTREAM_TIMEOUT"), 15.0, zero_is_unset=True
        )
        if env.get("SANCTOS_PRIMARY_COOLDOWN"):
            kwargs["primary_cooldown"] = max(0.0, _number(env.get("SANCTOS_PRIMARY_COOLDOWN"), 30.0))

        kwargs["cache_all"] = env.get("SANCTOS_CACHE_ALL", "") == "1"
        # An explicit 0 means "use the default" for these two.
        kwargs["default_ttl"] = max(
            0, int(_number(env.get("SANCTOS_DEFAULT_TTL"), 2, zero_is_unset=True))
        )
        kwargs["swr_window"] = max(
            0, int(_number(env.get("SANCTOS_STALE_WINDOW"), 60, zero_is_unset=True))
        )
        kwargs["stale_fallback_on_error"] = env.get("SANCTOS_STALE_FALLBACK_ON_ERROR", "1") == "1"
        kwargs["stale_fallback_max_age"] = max(
            0, int(_number(env.get("SANCTOS_STALE_FALLBACK_MAX_AGE"), 3600))
        )
        kwargs["cache_sync_write"] = env.get("SANCTOS_CACHE_SYNC_WRITE", "") == "1"

        origins = parse_csv(env.get("ALLOW_ORIGINS"))
        if origins:
            kwargs["allow_origins"] = origins
        expose = parse_csv(env.get("EXPOSE_HEADERS"))
        if expose:
            kwargs["expose_headers"] = expose

        kwargs["indexer_url"] = str(env.get("INDEXER_URL", "")).strip()
        if str(env.get("INDEXER_ENABLED", "")).strip():
            kwargs["indexer_enabled"] = truthy(env.get("INDEXER_ENABLED"))
        kwargs["indexer_timeout_ms"] = max(
            250, int(_number(env.get("INDEXER_TIMEOUT_MS"), 2500, zero_is_unset=True))
        )
        methods = parse_csv(env.get("INDEXER_ALLOWED_METHODS"))
        if methods:
            kwargs["indexer_allowed_methods"] = [m.upper() for m in methods]
        kwargs["indexer_allowed_paths"] = parse_csv(env.get("INDEXER_ALLOWED_PATHS"))

        kwargs["stats_url"] = str(env.get("SANCTOS_STATS_URL", "")).strip().rstrip("/")
        kwargs["stats_path"] = str(env.get("SANCTOS_STATS_PATH", "")).strip()
        kwargs["stats_keep_days"] = max(1, int(_number(env.get("SANCTOS_STATS_KEEP_DAYS"), 10)))

        log_level = str(env.get("SANCTOS_LOG_LEVEL", "")).strip().upper()
        if log_level:
            kwargs["log_level"] = log_level
        if env.get("SANCTOS_LOG_JSON"):
            kwargs["log_json"] = truthy(env.get("SANCTOS_LOG_JSON"))

        return cls(**kwargs)
