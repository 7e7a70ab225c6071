"""
Query and top-off result containers.

Structured output of the engine's public operations, with a pandas
view of the records and a summary of the events they describe.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .models import EventRecord, QueryPlan

COLUMNS = [
    "id", "time", "magnitude", "depth", "latitude", "longitude",
    "place", "mag_type", "status",
]


def to_dataframe(records: Sequence[EventRecord]) -> pd.DataFrame:
    """Flatten records into a DataFrame (one row per event)."""
    if not records:
        return pd.DataFrame(columns=COLUMNS)

    rows = []
    for r in records:
        rows.append({
            "id": r.id,
            "time": pd.to_datetime(r.timestamp_ms, unit="ms", utc=True),
            "magnitude": r.magnitude,
            "depth": r.depth_km,
            "latitude": r.latitude,
            "longitude": r.longitude,
            "place": r.properties.get("place"),
            "mag_type": r.properties.get("magType"),
            "status": r.properties.get("status"),
        })
    return pd.DataFrame(rows, columns=COLUMNS)


def summarize(records: Sequence[EventRecord]) -> Dict[str, Any]:
    """Summary statistics for a record set.

    Null magnitudes count as 0, matching how magnitude filters treat them.
    """
    if not records:
        return {
            "total": 0,
            "avg_magnitude": 0.0,
            "max_magnitude": 0.0,
            "min_magnitude": 0.0,
            "avg_depth": 0.0,
            "max_depth": 0.0,
            "first_event": None,
            "last_event": None,
            "largest_event_id": None,
        }

    df = to_dataframe(records)
    mags = df["magnitude"].astype(float).fillna(0.0)
    depths = df["depth"].astype(float)
    return {
        "total": len(df),
        "avg_magnitude": float(mags.mean()),
        "max_magnitude": float(mags.max()),
        "min_magnitude": float(mags.min()),
        "avg_depth": float(depths.mean()),
        "max_depth": float(depths.max()),
        "first_event": df["time"].min().isoformat(),
        "last_event": df["time"].max().isoformat(),
        "largest_event_id": str(df.loc[mags.idxmax(), "id"]),
    }


@dataclass
class QueryResult:
    """Result of ``CacheEngine.query``.

    Carries the canonical record set, the plan that produced it, and the
    telemetry of the run. A failed cache write is reported on
    ``store_error`` without discarding the records.
    """

    records: List[EventRecord]
    summary: Dict[str, Any]
    plan: QueryPlan
    cached_count: int = 0
    fetched_count: int = 0
    api_calls: int = 0
    chunks: int = 0
    cancelled: bool = False
    store_error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def from_cache_only(self) -> bool:
        return self.plan.is_complete

    @property
    def data(self) -> pd.DataFrame:
        return to_dataframe(self.records)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dictionary (excludes records)."""
        return {
            "records": len(self.records),
            "summary": self.summary,
            "cached_days": len(self.plan.cached_days),
            "stale_days": len(self.plan.stale_days),
            "cached_count": self.cached_count,
            "fetched_count": self.fetched_count,
            "api_calls": self.api_calls,
            "chunks": self.chunks,
            "cancelled": self.cancelled,
            "store_error": self.store_error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "warnings": self.warnings,
        }


@dataclass
class TopOffResult:
    """Result of a top-off refresh.

    ``full_refresh_required`` means the gap since the latest known event
    is too large for a single request; the caller should re-run a full
    query instead.
    """

    records: Tuple[EventRecord, ...] = ()
    count: int = 0
    full_refresh_required: bool = False
    store_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "full_refresh_required": self.full_refresh_required,
            "store_error": self.store_error,
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
