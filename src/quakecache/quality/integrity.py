"""
Cache integrity check.

Flattens every cached day into one frame and runs the quality rules
over it: ids present and unique within a scope, coordinates in range,
each record filed under its own UTC day, and magnitudes inside the
coverage the day was fetched with.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..cache.store import RecordStore
from ..errors import StoreError
from ..models import RegionScope
from .report import ValidationReport
from .rules import ColumnMatchRule, CompletenessRule, CustomRule, RangeRule, UniquenessRule
from .validator import DataValidator

log = logging.getLogger("quality.integrity")

FRAME_COLUMNS = [
    "key", "key_day", "scope", "id", "time_ms", "record_day", "magnitude",
    "latitude", "longitude", "depth", "coverage_min", "coverage_max",
]

CLEAR_RECOMMENDATION = "The cache may hold stale or corrupted data. Clear it to refetch."
RESET_RECOMMENDATION = "The cache could not be read. Reset the cache directory."


@dataclass
class IntegrityReport:
    """Outcome of ``check_cache_integrity``."""

    is_healthy: bool
    issues: List[str] = field(default_factory=list)
    recommendation: Optional[str] = None
    report: Optional[ValidationReport] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "issues": self.issues,
            "recommendation": self.recommendation,
        }


def cache_frame(store: RecordStore, scope: Optional[RegionScope] = None) -> pd.DataFrame:
    """One row per cached record, tagged with the key it is filed under."""
    rows = []
    for key in store.list_keys(scope):
        entry = store.get(key)
        if entry is None:
            continue
        for r in entry.records:
            rows.append({
                "key": str(key),
                "key_day": key.date.isoformat(),
                "scope": key.scope.value,
                "id": r.id,
                "time_ms": r.timestamp_ms,
                "record_day": r.day.isoformat(),
                "magnitude": r.magnitude,
                "latitude": r.latitude,
                "longitude": r.longitude,
                "depth": r.depth_km,
                "coverage_min": entry.coverage.min,
                "coverage_max": entry.coverage.max,
            })
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def _magnitude_within_coverage(df: pd.DataFrame) -> Tuple[bool, Dict[str, Any]]:
    mags = pd.to_numeric(df["magnitude"], errors="coerce").fillna(0.0)
    outside = (mags < df["coverage_min"]) | (mags > df["coverage_max"])
    count = int(outside.sum())
    return count == 0, {"outside_coverage": count}


def build_validator(name: str = "cache") -> DataValidator:
    return DataValidator(name).add_rules([
        CompletenessRule(["id", "time_ms"]),
        UniquenessRule(["scope", "id"]),
        RangeRule("latitude", -90.0, 90.0),
        RangeRule("longitude", -180.0, 180.0),
        RangeRule("depth", -10.0, 1000.0),
        ColumnMatchRule("record_day", "key_day", name="record_day_matches_key"),
        CustomRule(_magnitude_within_coverage, name="magnitude_within_coverage",
                   column="magnitude"),
    ])


def check_cache_integrity(
    store: RecordStore, scope: Optional[RegionScope] = None
) -> IntegrityReport:
    """Run the integrity rules over the cache (or one scope of it)."""
    try:
        df = cache_frame(store, scope)
    except StoreError as exc:
        log.warning("Integrity check could not read the cache: %s", exc)
        return IntegrityReport(
            is_healthy=False,
            issues=[f"Failed to read cache: {exc}"],
            recommendation=RESET_RECOMMENDATION,
        )

    report = build_validator(f"cache_{scope.value}" if scope else "cache").validate(df)
    issues = report.issues()
    return IntegrityReport(
        is_healthy=report.passed,
        issues=issues,
        recommendation=None if report.passed else CLEAR_RECOMMENDATION,
        report=report,
    )
