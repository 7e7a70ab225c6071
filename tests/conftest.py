"""Shared test fixtures: sample catalog data, a fake clock and a fake upstream."""
from datetime import date, datetime, timezone
from typing import List

import pandas as pd
import pytest

from quakecache.cache.store import InMemoryRecordStore
from quakecache.config import EngineConfig
from quakecache.extractors.base_client import BaseClient
from quakecache.models import EventRecord, day_start_ms

# 2024-03-15 12:00:00 UTC
NOW_MS = int(datetime(2024, 3, 15, 12, tzinfo=timezone.utc).timestamp() * 1000)
HOUR_MS = 60 * 60 * 1000


def make_record(event_id, day, hour=12, magnitude=4.5, **kwargs) -> EventRecord:
    """Event on ``day`` (a date) at ``hour`` UTC."""
    return EventRecord(
        id=event_id,
        timestamp_ms=day_start_ms(day) + hour * HOUR_MS,
        magnitude=magnitude,
        depth_km=kwargs.get("depth_km", 10.0),
        longitude=kwargs.get("longitude", -118.24),
        latitude=kwargs.get("latitude", 34.05),
        properties=kwargs.get("properties", {"place": "Los Angeles, CA"}),
    )


class FakeClock:
    """Settable epoch-ms clock."""

    def __init__(self, now=NOW_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeClient(BaseClient):
    """Upstream double serving a fixed record set.

    Every ``fetch_window`` call is recorded as ``(start_ms, end_ms,
    magnitude, scope)``. Windows are served inclusively on both ends,
    like the real catalog. ``fail_on`` makes the Nth call (1-based)
    raise the given exception.
    """

    source_name = "fake"

    def __init__(self, records=(), fail_on=None, error=None, config=None):
        super().__init__(config or EngineConfig(chunk_delay=0, region_delay=0))
        self.records: List[EventRecord] = list(records)
        self.calls = []
        self.fail_on = fail_on
        self.error = error

    def fetch_window(self, start_ms, end_ms, magnitude, scope):
        self.calls.append((start_ms, end_ms, magnitude, scope))
        self.api_calls += 1
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise self.error
        return [
            r for r in self.records
            if start_ms <= r.timestamp_ms <= end_ms and magnitude.contains(r.magnitude)
        ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return EngineConfig(chunk_delay=0, region_delay=0, backoff_base=0.01)


@pytest.fixture
def store():
    return InMemoryRecordStore()


# --- Upstream fixtures ---

@pytest.fixture
def mock_geojson():
    """Sample USGS GeoJSON response with 3 earthquake features."""
    return {
        "type": "FeatureCollection",
        "metadata": {"generated": 1700000000000, "count": 3},
        "features": [
            {
                "id": "us7000l1aa",
                "type": "Feature",
                "properties": {
                    "mag": 7.1,
                    "place": "100 km S of Adak, Alaska",
                    "time": 1700000000000,
                    "type": "earthquake",
                    "status": "reviewed",
                },
                "geometry": {"type": "Point", "coordinates": [-176.65, 51.0, 30.0]},
            },
            {
                "id": "us7000l1bb",
                "type": "Feature",
                "properties": {
                    "mag": 5.5,
                    "place": "50 km NE of Los Angeles, CA",
                    "time": 1700010000000,
                    "type": "earthquake",
                    "status": "automatic",
                },
                "geometry": {"type": "Point", "coordinates": [-118.24, 34.05, 12.5]},
            },
            {
                "id": "us7000l1cc",
                "type": "Feature",
                "properties": {
                    "mag": None,
                    "place": "20 km W of Hilo, Hawaii",
                    "time": 1700020000000,
                    "type": "earthquake",
                    "status": "reviewed",
                },
                "geometry": {"type": "Point", "coordinates": [-155.3, 19.7, 45.0]},
            },
        ],
    }


@pytest.fixture
def week_of_records():
    """Two events a day for 2024-02-01..2024-02-07 (historical relative to NOW_MS)."""
    records = []
    for offset in range(7):
        day = date(2024, 2, 1 + offset)
        records.append(make_record(f"a{offset}", day, hour=3, magnitude=2.5))
        records.append(make_record(f"b{offset}", day, hour=15, magnitude=4.5))
    return records


# --- Quality validation fixtures ---

@pytest.fixture
def clean_df():
    """Cache frame with no quality issues."""
    return pd.DataFrame({
        'id': ['ev1', 'ev2', 'ev3', 'ev4', 'ev5'],
        'scope': ['us'] * 5,
        'magnitude': [4.1, 2.3, 5.0, 3.3, 2.8],
        'latitude': [34.0, 61.2, 19.7, 18.2, 13.4],
        'record_day': ['2024-02-01'] * 5,
        'key_day': ['2024-02-01'] * 5,
    })


@pytest.fixture
def messy_df():
    """Cache frame with completeness, uniqueness, range and filing issues."""
    return pd.DataFrame({
        'id': ['ev1', 'ev2', 'ev2', 'ev4', None],
        'scope': ['us'] * 5,
        'magnitude': [4.1, 12.0, 5.0, -3.0, 2.8],
        'latitude': [34.0, 61.2, 19.7, 95.0, 13.4],
        'record_day': ['2024-02-01', '2024-02-01', '2024-02-02', '2024-02-01', '2024-02-01'],
        'key_day': ['2024-02-01'] * 5,
    })