"""
USGS Earthquake Hazards API client.

Fetches seismic events from earthquake.usgs.gov as GeoJSON. A window
is fetched with one request per bounding box of the region scope,
sequentially, with a short pause between boxes.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..cache.merge import dedupe
from ..models import EventRecord, GeoBounds, MagnitudeRange, RegionScope
from .base_client import BaseClient


def format_time(timestamp_ms: int) -> str:
    """UTC ISO-8601 with milliseconds, as the FDSN service expects."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]


class USGSClient(BaseClient):
    """Client for the USGS FDSN event service.

    Usage::

        client = USGSClient()
        records = client.fetch_window(
            start_ms, end_ms, MagnitudeRange(min=4.0), RegionScope.US,
        )
    """

    source_name = "usgs"

    def query(
        self,
        start_ms: int,
        end_ms: int,
        magnitude: MagnitudeRange,
        bounds: Optional[GeoBounds] = None,
        limit: Optional[int] = None,
        orderby: str = "time",
    ) -> List[EventRecord]:
        """Issue one upstream request.

        Args:
            start_ms: Window start (inclusive), epoch ms.
            end_ms: Window end, epoch ms.
            magnitude: Magnitude filter; open ends are not sent.
            bounds: Bounding box, or None for no geographic filter.
            limit: Result cap; defaults to the configured upstream cap.
            orderby: Upstream ordering.

        Returns:
            Parsed records in upstream order.
        """
        limit = limit or self.config.result_limit
        params: Dict[str, Any] = {
            "format": "geojson",
            "starttime": format_time(start_ms),
            "endtime": format_time(end_ms),
            "limit": limit,
            "orderby": orderby,
        }
        params.update(magnitude.to_params())
        if bounds is not None:
            params.update(bounds.to_params())

        data = self._get("/query", params=params)
        features = data.get("features", []) if isinstance(data, dict) else []
        if len(features) >= limit:
            self._log.warning(
                "Result cap %d reached for %s..%s (%s); window may be truncated",
                limit, params["starttime"], params["endtime"],
                bounds.name if bounds else "worldwide",
            )
        return self._parse(features)

    def fetch_window(
        self,
        start_ms: int,
        end_ms: int,
        magnitude: MagnitudeRange,
        scope: RegionScope,
    ) -> List[EventRecord]:
        """Fetch a window for every bounding box of ``scope``."""
        boxes = list(scope.bounds) or [None]
        records: List[EventRecord] = []
        for i, box in enumerate(boxes):
            records.extend(self.query(start_ms, end_ms, magnitude, bounds=box))
            if i < len(boxes) - 1:
                time.sleep(self.config.region_delay)
        return dedupe(records)

    # --- Internal helpers -----------------------------------------------------

    def _parse(self, features: list) -> List[EventRecord]:
        """Parse GeoJSON features, skipping malformed ones."""
        records = []
        for f in features:
            try:
                records.append(EventRecord.from_feature(f))
            except (TypeError, ValueError) as exc:
                self._log.warning("Skipping malformed feature %r: %s", f.get("id"), exc)
        return records
