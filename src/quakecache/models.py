"""
Value types shared by the cache, planner and fetch pipeline.

All calendar arithmetic is done in UTC: a record's day is the UTC date
of its occurrence time, and a day key spans ``[00:00Z, 24:00Z)``.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError

MS_PER_DAY = 24 * 60 * 60 * 1000

# Full magnitude range offered to consumers; bounds at or beyond these
# values are not sent upstream.
MIN_MAGNITUDE = -2.0
MAX_MAGNITUDE = 10.0


# --- Time helpers -------------------------------------------------------------

def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_day(timestamp_ms: int) -> date:
    """UTC calendar date of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


def day_start_ms(day: date) -> int:
    """Epoch milliseconds of ``day`` at 00:00 UTC."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return int(start.timestamp() * 1000)


def iter_days(start: date, end: date) -> List[date]:
    """Every calendar day in ``[start, end]``; empty when start > end."""
    days = []
    current = start
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days


# --- Geography ----------------------------------------------------------------

@dataclass(frozen=True)
class GeoBounds:
    """Latitude/longitude bounding box for upstream queries."""

    name: str
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    def to_params(self) -> Dict[str, float]:
        return {
            "minlatitude": self.min_latitude,
            "maxlatitude": self.max_latitude,
            "minlongitude": self.min_longitude,
            "maxlongitude": self.max_longitude,
        }

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_latitude <= latitude <= self.max_latitude
            and self.min_longitude <= longitude <= self.max_longitude
        )


US_REGION_BOUNDS: Tuple[GeoBounds, ...] = (
    GeoBounds("continental", 24.396, 49.384, -125.0, -66.93),
    GeoBounds("alaska", 51.0, 71.5, -180.0, -130.0),
    GeoBounds("hawaii", 18.5, 28.5, -178.5, -154.5),
    GeoBounds("puerto_rico_usvi", 17.5, 18.6, -68.0, -64.5),
    GeoBounds("guam", 13.0, 14.0, 144.0, 145.5),
)


class RegionScope(str, Enum):
    """Geographic partition a query and its cache entries belong to."""

    US = "us"
    WORLDWIDE = "worldwide"

    @property
    def bounds(self) -> Tuple[GeoBounds, ...]:
        """Disjoint boxes queried one by one; empty means unbounded."""
        if self is RegionScope.US:
            return US_REGION_BOUNDS
        return ()

    @property
    def region_count(self) -> int:
        return max(1, len(self.bounds))


# --- Records ------------------------------------------------------------------

@dataclass(frozen=True)
class EventRecord:
    """A single seismic event.

    Identity is ``id``: two records with the same id describe the same
    event even if their other fields differ. ``properties`` holds the
    upstream metadata untouched and is ignored by equality.
    """

    id: str
    timestamp_ms: int
    magnitude: Optional[float]
    depth_km: float
    longitude: float
    latitude: float
    properties: Dict[str, Any] = field(
        default_factory=dict, compare=False, hash=False, repr=False
    )

    @property
    def day(self) -> date:
        return utc_day(self.timestamp_ms)

    @classmethod
    def from_feature(cls, feature: Dict[str, Any]) -> "EventRecord":
        """Parse a GeoJSON feature from the FDSN event service."""
        props = feature.get("properties") or {}
        coords = (feature.get("geometry") or {}).get("coordinates") or []
        if feature.get("id") is None or props.get("time") is None:
            raise ValueError("feature is missing id or time")
        mag = props.get("mag")
        depth = coords[2] if len(coords) > 2 and coords[2] is not None else 0.0
        return cls(
            id=str(feature["id"]),
            timestamp_ms=int(props["time"]),
            magnitude=float(mag) if mag is not None else None,
            depth_km=float(depth),
            longitude=float(coords[0]) if coords else 0.0,
            latitude=float(coords[1]) if len(coords) > 1 else 0.0,
            properties=dict(props),
        )

    def to_feature(self) -> Dict[str, Any]:
        """Inverse of ``from_feature``."""
        props = dict(self.properties)
        props["mag"] = self.magnitude
        props["time"] = self.timestamp_ms
        return {
            "type": "Feature",
            "id": self.id,
            "properties": props,
            "geometry": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude, self.depth_km],
            },
        }


@dataclass(frozen=True)
class MagnitudeRange:
    """Inclusive magnitude interval."""

    min: float = MIN_MAGNITUDE
    max: float = MAX_MAGNITUDE

    def __post_init__(self):
        if self.min > self.max:
            raise ValidationError(
                f"minimum magnitude {self.min} exceeds maximum {self.max}"
            )

    def covers(self, other: "MagnitudeRange") -> bool:
        """True when ``other`` is a subset of this range."""
        return self.min <= other.min and self.max >= other.max

    def contains(self, magnitude: Optional[float]) -> bool:
        value = magnitude if magnitude is not None else 0.0
        return self.min <= value <= self.max

    def to_params(self) -> Dict[str, float]:
        """Upstream filter params; open ends are omitted."""
        params: Dict[str, float] = {}
        if self.min > MIN_MAGNITUDE:
            params["minmagnitude"] = self.min
        if self.max < MAX_MAGNITUDE:
            params["maxmagnitude"] = self.max
        return params


# --- Cache keys and entries ---------------------------------------------------

@dataclass(frozen=True, order=True)
class DayKey:
    """Unit of cache granularity: one UTC calendar day in one scope."""

    date: date
    scope: RegionScope

    def __str__(self) -> str:
        return f"{self.date.isoformat()}|{self.scope.value}"

    @classmethod
    def parse(cls, text: str) -> "DayKey":
        day, _, scope = text.partition("|")
        return cls(date.fromisoformat(day), RegionScope(scope))

    @property
    def start_ms(self) -> int:
        return day_start_ms(self.date)

    @property
    def end_ms(self) -> int:
        return self.start_ms + MS_PER_DAY


@dataclass(frozen=True)
class DayCacheEntry:
    """Records observed for one day key plus how they were fetched."""

    key: DayKey
    records: Tuple[EventRecord, ...]
    fetched_at_ms: int
    coverage: MagnitudeRange

    @property
    def event_count(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class CacheQuery:
    """External request: inclusive date range, magnitude range, scope."""

    start_date: date
    end_date: date
    magnitude: MagnitudeRange = field(default_factory=MagnitudeRange)
    scope: RegionScope = RegionScope.US

    SHORT_RANGE_DAYS = 14

    @property
    def days(self) -> List[date]:
        return iter_days(self.start_date, self.end_date)

    @property
    def day_keys(self) -> List[DayKey]:
        return [DayKey(d, self.scope) for d in self.days]

    @property
    def span_days(self) -> int:
        return max(0, (self.end_date - self.start_date).days + 1)

    @property
    def is_short_range(self) -> bool:
        return self.span_days <= self.SHORT_RANGE_DAYS


@dataclass(frozen=True)
class QueryPlan:
    """Partition of a query's days into reusable and to-fetch days."""

    cached_days: Tuple[DayKey, ...] = ()
    stale_days: Tuple[DayKey, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.stale_days

    @property
    def total_days(self) -> int:
        return len(self.cached_days) + len(self.stale_days)
