from __future__ import annotations

from typing import Any


class SanctosError(Exception):
    """Base exception for all edge node errors.

    Attributes:
        code: Optional machine-readable error code (e.g. ``"NO_UPSTREAM"``).
        details: Arbitrary key/value context about the error.
        status_code: HTTP status code the router should answer with when the
            error reaches a client (``None`` when not applicable).
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        """Whether the operation that raised this error can be retried."""
        return False


class ConfigurationError(SanctosError): ...


class RpcRequestError(SanctosError):
    """The caller sent something that is not a usable JSON-RPC body.

    Always answered with HTTP 400.
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("status_code", 400)
        super().__init__(message, **kwargs)


# ---------------------------------------------------------------------------
# Upstream failures
# ---------------------------------------------------------------------------


class UpstreamError(SanctosError): ...


class TransportError(UpstreamError):
    """An upstream could not be reached (DNS, TCP, TLS, timeout).

    Always retryable against the next endpoint in the list.
    """

    @property
    def is_retryable(self) -> bool:  # noqa: D102
        return True


class ThrottleError(UpstreamError):
    """An upstream answered HTTP 429 or 503."""

    @property
    def is_retryable(self) -> bool:  # noqa: D102
        return True


class AuthRejectionError(UpstreamError):
    """A fallback upstream answered HTTP 401/403 for this call.

    Never surfaced as-is to the caller.
    """


class NoUpstreamAvailableError(UpstreamError):
    """Every upstream endpoint failed without producing a usable response."""

    def __init__(self, message: str = "No upstream available", **kwargs: Any) -> None:
        kwargs.setdefault("code", "NO_UPSTREAM")
        kwargs.setdefault("status_code", 502)
        super().__init__(message, **kwargs)


# ---------------------------------------------------------------------------
# Cache / stats / indexer
# ---------------------------------------------------------------------------


class CacheIntegrityError(SanctosError):
    """Key hashing failed or a stored entry could not be decoded."""


class StatsUnavailableError(SanctosError):
    """The stats actor could not be reached or answered with an error."""


class IndexerError(SanctosError): ...


class IndexerTimeoutError(IndexerError):
    """The indexer did not answer within the configured deadline."""

    def __init__(self, message: str = "Indexer upstream timeout", **kwargs: Any) -> None:
        kwargs.setdefault("status_code", 504)
        super().__init__(message, **kwargs)

    @property
    def is_retryable(self) -> bool:  # noqa: D102
        return True
