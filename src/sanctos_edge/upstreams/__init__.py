"""Upstream URL resolution, labelling and redaction."""

from sanctos_edge.upstreams.registry import (
    compute_upstream_labels,
    redact_url,
    resolve_upstreams,
)

__all__ = ["compute_upstream_labels", "redact_url", "resolve_upstreams"]
