"""
Engine configuration, env-var driven.

Every setting has a default suitable for the public USGS catalog.
Override any of them with a ``QUAKECACHE_`` prefixed environment
variable, e.g. ``QUAKECACHE_RATE_LIMIT=30``.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ValidationError

USGS_BASE_URL = "https://earthquake.usgs.gov/fdsnws/event/1"


def _env(var: str, default: str) -> str:
    return os.environ.get(f"QUAKECACHE_{var}", default)


def _int_env(var: str, default: int) -> int:
    """Parse an integer setting, naming the variable on bad input."""
    raw = os.environ.get(f"QUAKECACHE_{var}")
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValidationError(
            f"QUAKECACHE_{var}={raw!r} is not a valid integer"
        ) from err


def _float_env(var: str, default: float) -> float:
    raw = os.environ.get(f"QUAKECACHE_{var}")
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise ValidationError(
            f"QUAKECACHE_{var}={raw!r} is not a valid number"
        ) from err


@dataclass
class EngineConfig:
    """Settings shared by the client, orchestrator and cache policy.

    Attributes:
        base_url: Root of the FDSN event service (no trailing slash).
        result_limit: Hard per-request result cap of the upstream.
        rate_limit: Maximum upstream requests per minute.
        request_timeout: Per-request timeout in seconds.
        max_retries: Retry attempts for 429/5xx/connection failures.
        backoff_base: Base delay in seconds; attempt ``n`` waits
            ``backoff_base * 2 ** n``.
        region_delay: Pause between bounding-box requests of one chunk.
        chunk_delay: Pause between chunks.
        partial_every: Emit a partial result every N chunks.
        historical_days: Days after which a calendar day never goes stale.
        recent_max_age_hours: Freshness window for recent days.
        cache_dir: Directory for the JSON file store; None keeps the
            cache in memory.
        log_level: Level used by ``configure_logging``.
    """

    base_url: str = field(default_factory=lambda: _env("BASE_URL", USGS_BASE_URL))
    result_limit: int = field(default_factory=lambda: _int_env("RESULT_LIMIT", 20000))
    rate_limit: int = field(default_factory=lambda: _int_env("RATE_LIMIT", 60))
    request_timeout: float = field(
        default_factory=lambda: _float_env("REQUEST_TIMEOUT", 30.0)
    )
    max_retries: int = field(default_factory=lambda: _int_env("MAX_RETRIES", 3))
    backoff_base: float = field(default_factory=lambda: _float_env("BACKOFF_BASE", 1.0))
    region_delay: float = field(default_factory=lambda: _float_env("REGION_DELAY", 0.1))
    chunk_delay: float = field(default_factory=lambda: _float_env("CHUNK_DELAY", 0.05))
    partial_every: int = field(default_factory=lambda: _int_env("PARTIAL_EVERY", 5))
    historical_days: int = field(
        default_factory=lambda: _int_env("HISTORICAL_DAYS", 28)
    )
    recent_max_age_hours: int = field(
        default_factory=lambda: _int_env("RECENT_MAX_AGE_HOURS", 24)
    )
    cache_dir: Optional[str] = field(
        default_factory=lambda: os.environ.get("QUAKECACHE_CACHE_DIR")
    )
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValidationError("max_retries must be >= 0")
        if self.partial_every < 1:
            raise ValidationError("partial_every must be >= 1")
        if self.rate_limit < 1:
            raise ValidationError("rate_limit must be >= 1")

    @property
    def historical_ms(self) -> int:
        return self.historical_days * 24 * 60 * 60 * 1000

    @property
    def recent_max_age_ms(self) -> int:
        return self.recent_max_age_hours * 60 * 60 * 1000


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a basic stderr handler for scripts and examples.

    The library never calls this itself.
    """
    logging.basicConfig(
        level=(level or EngineConfig().log_level).upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
