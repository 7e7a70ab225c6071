"""
quake-cache: a day-granular cache and synchronization engine for the
USGS earthquake catalog.

Usage::

    from datetime import date
    from quakecache import CacheEngine, CacheQuery, MagnitudeRange, RegionScope

    engine = CacheEngine()
    result = engine.query(CacheQuery(date(2024, 1, 1), date(2024, 1, 31),
                                     MagnitudeRange(min=2.5), RegionScope.US))
"""

from .cache.store import InMemoryRecordStore, JsonFileRecordStore, RecordStore, StoreStats
from .config import EngineConfig, configure_logging
from .engine import CacheEngine
from .errors import (
    OperationInProgress,
    QuakeCacheError,
    StoreError,
    UpstreamClientError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamServerError,
    UpstreamUnavailable,
    ValidationError,
)
from .extractors.usgs import USGSClient
from .models import (
    CacheQuery,
    DayCacheEntry,
    DayKey,
    EventRecord,
    MagnitudeRange,
    QueryPlan,
    RegionScope,
)
from .pipeline.progress import FetchProgress, Operation
from .pipeline.topoff import RefreshStrategy
from .quality.integrity import IntegrityReport
from .result import QueryResult, TopOffResult

__version__ = "0.1.0"

__all__ = [
    "CacheEngine",
    "CacheQuery",
    "DayCacheEntry",
    "DayKey",
    "EngineConfig",
    "EventRecord",
    "FetchProgress",
    "InMemoryRecordStore",
    "IntegrityReport",
    "JsonFileRecordStore",
    "MagnitudeRange",
    "Operation",
    "OperationInProgress",
    "QueryPlan",
    "QueryResult",
    "QuakeCacheError",
    "RecordStore",
    "RefreshStrategy",
    "RegionScope",
    "StoreError",
    "StoreStats",
    "TopOffResult",
    "USGSClient",
    "UpstreamClientError",
    "UpstreamError",
    "UpstreamRateLimited",
    "UpstreamServerError",
    "UpstreamUnavailable",
    "ValidationError",
    "configure_logging",
]
