"""
Incremental top-off refresh.

A top-off fetches only events newer than the latest one already held,
in a single un-chunked window per bounding box. It relies on the window
being short; gaps past the historical boundary are handed back to the
caller as "full refresh required" instead of risking an oversized
request.
"""

import logging
from enum import Enum
from typing import AbstractSet, Callable, Optional

from ..cache.merge import dedupe, sort_records
from ..config import EngineConfig
from ..extractors.base_client import BaseClient
from ..models import MS_PER_DAY, MagnitudeRange, RegionScope, now_ms
from ..result import TopOffResult


class RefreshStrategy(str, Enum):
    SKIP = "skip"
    TOP_OFF = "top-off"
    NORMAL = "normal"
    FULL = "full"


def choose_refresh_strategy(
    last_refresh_ms: Optional[int],
    interval_minutes: float,
    now: int,
    config: Optional[EngineConfig] = None,
) -> RefreshStrategy:
    """Pick a periodic refresh strategy from the time since the last one.

    Never refreshed, or under 90% of the interval elapsed (timer drift):
    skip. A gap past the historical boundary needs a full re-plan; a gap
    past the recent-data freshness window a normal re-query; anything
    shorter a top-off.
    """
    config = config or EngineConfig()
    if last_refresh_ms is None:
        return RefreshStrategy.SKIP

    gap = now - last_refresh_ms
    if gap < interval_minutes * 60 * 1000 * 0.9:
        return RefreshStrategy.SKIP
    if gap >= config.historical_ms:
        return RefreshStrategy.FULL
    if gap >= config.recent_max_age_ms:
        return RefreshStrategy.NORMAL
    return RefreshStrategy.TOP_OFF


class TopOffEngine:
    """Fetch events newer than a known timestamp."""

    def __init__(
        self,
        client: BaseClient,
        clock: Callable[[], int] = now_ms,
        config: Optional[EngineConfig] = None,
    ):
        self.client = client
        self.clock = clock
        self.config = config or client.config
        self._log = logging.getLogger("pipeline.topoff")

    def top_off(
        self,
        latest_known_ms: int,
        magnitude: MagnitudeRange,
        scope: RegionScope,
        known_ids: AbstractSet[str] = frozenset(),
    ) -> TopOffResult:
        """Fetch events in ``(latest_known_ms, now]`` not in ``known_ids``.

        Returns:
            TopOffResult with only genuinely new records. No request is
            made when there is nothing to fetch or the gap is too large.
        """
        now = self.clock()
        if latest_known_ms >= now:
            return TopOffResult()

        gap = now - latest_known_ms
        if gap > self.config.historical_ms:
            self._log.info(
                "Top-off gap of %.1f days exceeds %d; full refresh required",
                gap / MS_PER_DAY, self.config.historical_days,
            )
            return TopOffResult(full_refresh_required=True)

        # Start 1 ms after the newest known event to avoid re-fetching it.
        fetched = self.client.fetch_window(latest_known_ms + 1, now, magnitude, scope)
        new = [
            r for r in dedupe(fetched)
            if r.id not in known_ids and magnitude.contains(r.magnitude)
        ]
        self._log.info("Top-off found %d new events (%d fetched)", len(new), len(fetched))
        return TopOffResult(records=tuple(sort_records(new)), count=len(new))
