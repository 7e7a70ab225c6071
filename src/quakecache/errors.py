"""
Exception taxonomy for the cache engine.

Validation errors are raised before any I/O. Upstream errors carry the
HTTP status and a category so callers can tell a bad request from a
temporarily overloaded catalog. Store errors are raised by record
store backends and reported separately from fetched results.
"""

from typing import List, Optional, Sequence


class QuakeCacheError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(QuakeCacheError):
    """Query rejected before any planning or network call."""


class OperationInProgress(QuakeCacheError):
    """A full query was started while another operation was running."""


class UpstreamError(QuakeCacheError):
    """Failure talking to the upstream catalog.

    Args:
        message: Human-readable description.
        status: HTTP status code, if a response was received.
        category: One of ``client``, ``rate_limited``, ``server``,
            ``unavailable`` or ``network``.
    """

    category = "upstream"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        category: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        if category is not None:
            self.category = category
        # Records fetched before the failure; set by the orchestrator.
        self.partial_records: List = []

    def attach_partial(self, records: Sequence) -> "UpstreamError":
        self.partial_records = list(records)
        return self


class UpstreamClientError(UpstreamError):
    """4xx (other than 429). Not retried."""

    category = "client"


class UpstreamRateLimited(UpstreamError):
    """HTTP 429. Retried with backoff."""

    category = "rate_limited"


class UpstreamServerError(UpstreamError):
    """HTTP 5xx. Retried with backoff."""

    category = "server"


class UpstreamUnavailable(UpstreamError):
    """Retries exhausted on a retryable failure."""

    category = "unavailable"

    DEFAULT_MESSAGE = (
        "Upstream catalog temporarily unavailable (possible rate limiting). "
        "Try again in a few minutes or select a shorter time range."
    )

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        category: Optional[str] = None,
    ):
        super().__init__(message or self.DEFAULT_MESSAGE, status, category)


class StoreError(QuakeCacheError):
    """The record store failed to read or write a day entry."""
