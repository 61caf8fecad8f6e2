"""Upstream endpoint resolution, labelling and URL redaction.

Everything here is pure: the same configuration always yields the same
ordered endpoint list with the same display labels.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.constants import DEFAULT_UPSTREAMS
from sanctos_edge.core.types import UpstreamEndpoint

_PLACEHOLDERS = {"quicknode", "helius"}
_KNOWN_PROVIDERS = ("helius", "quicknode", "ankr", "alchemy", "syndica", "chainstack")
_SECRET_QUERY_KEYS = ("api-key", "apikey", "key", "token")
_KEYLIKE_SEGMENT = re.compile(r"^[A-Za-z0-9_-]{16,}$")
_HEX_SEGMENT = re.compile(r"^[a-f0-9]{16,}$", re.IGNORECASE)
_QUERY_KEY_FALLBACK = re.compile(r"(api-?key=)[^&]+", re.IGNORECASE)


def normalize_upstream_url(raw: str | None) -> str | None:
    """Clean up a configured upstream URL, or return ``None`` if unusable.

    Strips surrounding quotes, turns ``//host`` into ``https://host`` and
    adds ``https://`` to schemeless values.  Bare provider placeholders such
    as ``"helius"`` are rejected.
    """
    url = str(raw or "").strip()
    if not url or url in _PLACEHOLDERS:
        return None
    url = url.strip('"').strip("'")
    if url.startswith("//"):
        url = "https:" + url
    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = "https://" + url
    parts = urlsplit(url)
    if not parts.hostname:
        return None
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc, path, parts.query, parts.fragment))


def detect_provider_name(url: str) -> str:
    """Guess a provider name from the hostname, falling back to the hostname."""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return "upstream"
    for provider in _KNOWN_PROVIDERS:
        if provider in host:
            return provider
    return host or "upstream"


def upstream_urls(config: EdgeConfig, environ: Mapping[str, str] | None = None) -> list[str]:
    """Return the ordered upstream URL list for *config*.

    URLs referenced through ``upstream_secret_keys`` win over the plain
    ``upstreams`` list; when neither yields anything usable the public
    mainnet endpoint is used.
    """
    env = os.environ if environ is None else environ

    from_secrets = [
        url
        for url in (normalize_upstream_url(env.get(name)) for name in config.upstream_secret_keys)
        if url
    ]
    if from_secrets:
        return from_secrets

    plain = [url for url in (normalize_upstream_url(u) for u in config.upstreams) if url]
    return plain or list(DEFAULT_UPSTREAMS)


def compute_upstream_labels(urls: list[str], aliases: list[str] | None = None) -> list[str]:
    """Assign display labels to *urls*.

    Aliases are used positionally when given (``"upstream N"`` for missing
    ones).  Otherwise labels are ``"<provider> <n>"`` with *n* counting
    repeated providers, e.g. ``["helius 1", "helius 2", "ankr 1"]``.
    """
    if aliases:
        return [aliases[i] if i < len(aliases) else f"upstream {i + 1}" for i in range(len(urls))]

    counts: dict[str, int] = {}
    labels: list[str] = []
    for url in urls:
        base = detect_provider_name(url)
        counts[base] = counts.get(base, 0) + 1
        labels.append(f"{base} {counts[base]}")
    return labels


def resolve_upstreams(
    config: EdgeConfig, environ: Mapping[str, str] | None = None
) -> list[UpstreamEndpoint]:
    urls = upstream_urls(config, environ)
    labels = compute_upstream_labels(urls, config.upstream_aliases)
    return [UpstreamEndpoint(url=u, label=lbl) for u, lbl in zip(urls, labels)]


def redact_url(url: str) -> str:
    """Mask API keys in query strings and key-like path segments."""
    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(url)
    except ValueError:
        return _QUERY_KEY_FALLBACK.sub(r"\1REDACTED", str(url or ""))

    query = [
        (k, "REDACTED" if k in _SECRET_QUERY_KEYS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    segments = [
        "REDACTED" if _KEYLIKE_SEGMENT.match(seg) or _HEX_SEGMENT.match(seg) else seg
        for seg in parts.path.split("/")
        if seg
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc, "/" + "/".join(segments), urlencode(query), parts.fragment)
    )
