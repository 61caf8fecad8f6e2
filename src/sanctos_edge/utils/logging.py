from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping, cast

import structlog

from sanctos_edge.upstreams.registry import redact_url

# Event keys that may carry upstream URLs with embedded API keys.
_URL_KEYS = ("url", "upstream", "upstream_url", "target")


def _redact_urls(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking API keys in URL-valued fields."""
    for key in _URL_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and "://" in value:
            event_dict[key] = redact_url(value)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json: bool = True,
    *,
    instance_id: str | None = None,
    build: str | None = None,
) -> None:
    """Configure structlog for the edge node.

    In production (json=True) uses JSONRenderer for machine-parseable output.
    In development (json=False) uses ConsoleRenderer for human-readable output.
    httpx/httpcore request logging is capped at WARNING because it prints
    full upstream URLs.

    Args:
        level: Standard logging level string, e.g. "DEBUG", "INFO", "WARNING".
        json: If True, render log entries as JSON. If False, use coloured console output.
        instance_id: Bound to every entry as ``instance`` when given.
        build: Bound to every entry as ``build`` when given.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_urls,
        structlog.processors.StackInfoRenderer(),
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))

    bound: dict[str, str] = {}
    if instance_id:
        bound["instance"] = instance_id
    if build:
        bound["build"] = build
    if bound:
        structlog.contextvars.bind_contextvars(**bound)


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a named structlog logger.

    Args:
        name: Logger name, typically ``__name__`` of the calling module.

    Returns:
        A structlog BoundLogger bound to *name*.
    """
    return cast(structlog.BoundLogger, structlog.get_logger(name))
