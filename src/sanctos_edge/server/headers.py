"""CORS, security and upstream-header hygiene for every response."""
from __future__ import annotations

from collections.abc import Mapping

from starlette.datastructures import MutableHeaders

from sanctos_edge.core.config import EdgeConfig

_DEFAULT_REQUEST_HEADERS = "content-type,accept,solana-client"

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "X-Frame-Options": "DENY",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
}

# The dashboard renders with an inline script.
HTML_CSP = (
    "default-src 'self'; img-src 'self' data:; "
    "style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline'"
)


def pick_origin(origin: str | None, config: EdgeConfig) -> str:
    """Echo *origin* only if the allow-list contains it or ``*``."""
    if not origin:
        return ""
    if "*" in config.allow_origins or origin in config.allow_origins:
        return origin
    return ""


def cors_headers(request_headers: Mapping[str, str], config: EdgeConfig) -> dict[str, str]:
    origin = pick_origin(request_headers.get("origin"), config)
    if not origin:
        return {}
    return {
        "access-control-allow-origin": origin,
        "access-control-allow-methods": "GET, POST, OPTIONS",
        "access-control-allow-headers": request_headers.get(
            "access-control-request-headers", _DEFAULT_REQUEST_HEADERS
        ),
        "access-control-max-age": "86400",
        "access-control-expose-headers": ", ".join(config.expose_headers),
        "vary": "Origin",
    }


def apply_cors(
    headers: MutableHeaders,
    request_headers: Mapping[str, str],
    config: EdgeConfig,
    instance_id: str,
) -> None:
    for key, value in cors_headers(request_headers, config).items():
        headers[key] = value
    if "access-control-expose-headers" not in headers and config.expose_headers:
        headers["access-control-expose-headers"] = ", ".join(config.expose_headers)
    headers["x-sanctos-instance"] = instance_id


def apply_security_headers(headers: MutableHeaders, *, is_html: bool = False) -> None:
    for key, value in SECURITY_HEADERS.items():
        headers[key] = value
    if is_html:
        headers["Content-Security-Policy"] = HTML_CSP


_NEVER_RELAYED = frozenset(
    {"set-cookie", "content-length", "content-encoding", "transfer-encoding", "connection"}
)


def strip_upstream_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Drop upstream CORS headers, cookies and framing headers before relaying."""
    return {
        k.lower(): v
        for k, v in headers.items()
        if not k.lower().startswith("access-control-") and k.lower() not in _NEVER_RELAYED
    }
