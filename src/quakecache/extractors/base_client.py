"""
Base API client with built-in rate limiting and retries.

Catalog clients inherit from BaseClient, which provides:
- Token bucket rate limiter (thread-safe, configurable requests/minute)
- Retry with exponential backoff and jitter on 429, 5xx and
  connection failures
- Immediate failure on other 4xx responses
- HTTP 429 Retry-After handling
- Session pooling with custom User-Agent
- Per-request telemetry
"""

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ..config import EngineConfig
from ..errors import (
    UpstreamClientError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamServerError,
    UpstreamUnavailable,
)
from ..models import EventRecord, MagnitudeRange, RegionScope


class BaseClient(ABC):
    """Abstract base class for upstream catalog clients.

    Subclasses implement ``source_name`` and ``fetch_window()``.
    Rate limiting, retries, and telemetry are handled by ``_get``.

    Usage::

        class MyCatalog(BaseClient):
            source_name = "my_catalog"

            def fetch_window(self, start_ms, end_ms, magnitude, scope):
                data = self._get("/query", params={"start": start_ms})
                return [EventRecord.from_feature(f) for f in data["features"]]
    """

    # --- Abstract interface ---------------------------------------------------

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Short identifier for this catalog (e.g. 'usgs')."""

    @abstractmethod
    def fetch_window(
        self,
        start_ms: int,
        end_ms: int,
        magnitude: MagnitudeRange,
        scope: RegionScope,
    ) -> List[EventRecord]:
        """Fetch every event in ``[start_ms, end_ms)`` for ``scope``."""

    # --- Lifecycle ------------------------------------------------------------

    def __init__(self, config: Optional[EngineConfig] = None):
        """Initialize the client.

        Args:
            config: Engine settings; read from the environment if omitted.
        """
        self.config = config or EngineConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.rate_limit = self.config.rate_limit

        # Session pooling
        self._session = requests.Session()
        self._session.headers.update({
            "User-Agent": f"quake-cache/{self.source_name}",
            "Accept": "application/json",
        })

        # Token bucket rate limiter
        self._tokens = float(self.rate_limit)
        self._max_tokens = float(self.rate_limit)
        self._refill_rate = self.rate_limit / 60.0  # tokens per second
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

        # Telemetry counters
        self.api_calls = 0
        self.retries = 0
        self.errors = 0
        self._timings: list = []

        self._log = logging.getLogger(f"extractor.{self.source_name}")

    def close(self) -> None:
        self._session.close()

    # --- Rate limiter ---------------------------------------------------------

    def _wait_for_token(self) -> None:
        """Block until a rate-limit token is available."""
        while True:
            with self._lock:
                now = time.monotonic()
                elapsed = now - self._last_refill
                self._tokens = min(
                    self._max_tokens,
                    self._tokens + elapsed * self._refill_rate,
                )
                self._last_refill = now

                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return

            time.sleep(0.05)

    # --- HTTP with retries ----------------------------------------------------

    def _backoff(self, attempt: int) -> float:
        """Delay before retry ``attempt + 1``: base * 2**attempt plus jitter."""
        base = self.config.backoff_base
        return base * (2 ** attempt) + random.uniform(0, base)

    def _get(self, path: str, params: Optional[Dict] = None) -> Any:
        """GET request with rate limiting and retries.

        Args:
            path: URL path appended to ``base_url``.
            params: Query parameters.

        Returns:
            Parsed JSON response.

        Raises:
            UpstreamClientError: On a non-retryable 4xx response.
            UpstreamUnavailable: When retries are exhausted.
        """
        url = f"{self.base_url}{path}" if path.startswith("/") else path
        max_retries = self.config.max_retries

        last_error: Optional[UpstreamError] = None
        for attempt in range(max_retries + 1):
            if attempt > 0:
                self.retries += 1
            self._wait_for_token()
            self.api_calls += 1
            start = time.monotonic()

            try:
                resp = self._session.get(
                    url, params=params, timeout=self.config.request_timeout
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                self._timings.append(time.monotonic() - start)
                last_error = UpstreamError(str(exc), category="network")
                if attempt < max_retries:
                    wait = self._backoff(attempt)
                    self._log.warning(
                        "Connection error, retry %d/%d in %.1fs",
                        attempt + 1, max_retries, wait,
                    )
                    time.sleep(wait)
                continue

            self._timings.append(time.monotonic() - start)

            # 429 Too Many Requests: back off, honouring Retry-After
            if resp.status_code == 429:
                last_error = UpstreamRateLimited(
                    "Rate limited by upstream", status=429
                )
                if attempt < max_retries:
                    wait = max(self._backoff(attempt), self._retry_after(resp))
                    self._log.warning(
                        "Rate limited (429), retry %d/%d in %.1fs",
                        attempt + 1, max_retries, wait,
                    )
                    time.sleep(wait)
                continue

            # 4xx (except 429): don't retry
            if 400 <= resp.status_code < 500:
                self.errors += 1
                raise UpstreamClientError(
                    f"Upstream request failed: {resp.status_code} {resp.reason}",
                    status=resp.status_code,
                )

            # 5xx: retry with backoff
            if resp.status_code >= 500:
                last_error = UpstreamServerError(
                    f"Upstream server error: {resp.status_code}",
                    status=resp.status_code,
                )
                if attempt < max_retries:
                    wait = self._backoff(attempt)
                    self._log.warning(
                        "Server error %d, retry %d/%d in %.1fs",
                        resp.status_code, attempt + 1, max_retries, wait,
                    )
                    time.sleep(wait)
                continue

            try:
                return resp.json()
            except ValueError as exc:
                self.errors += 1
                raise UpstreamError(
                    f"Upstream returned invalid JSON: {exc}",
                    status=resp.status_code,
                    category="server",
                ) from exc

        # Exhausted retries
        self.errors += 1
        self._log.error("All %d attempts failed for %s", max_retries + 1, url)
        status = last_error.status if last_error is not None else None
        raise UpstreamUnavailable(status=status) from last_error

    @staticmethod
    def _retry_after(resp) -> float:
        try:
            return float(resp.headers.get("Retry-After", 0))
        except (TypeError, ValueError):
            return 0.0

    # --- Telemetry ------------------------------------------------------------

    def get_telemetry(self) -> Dict[str, Any]:
        """Return telemetry summary for this client."""
        return {
            "source": self.source_name,
            "api_calls": self.api_calls,
            "retries": self.retries,
            "errors": self.errors,
            "avg_latency": (
                sum(self._timings) / len(self._timings)
                if self._timings
                else 0.0
            ),
        }

    def reset_telemetry(self) -> None:
        """Reset all telemetry counters."""
        self.api_calls = 0
        self.retries = 0
        self.errors = 0
        self._timings.clear()
