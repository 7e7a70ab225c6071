"""
Day-granular record stores.

A store maps a ``DayKey`` to the records observed for that day plus the
fetch time and magnitude coverage. ``RecordStore`` is the capability the
engine consumes; two backends are provided:

- ``InMemoryRecordStore``: dict-backed, for tests and short-lived
  processes.
- ``JsonFileRecordStore``: one JSON document per day key under a
  directory, written atomically.

Storage layout of the file store::

    {cache_dir}/{scope}/{YYYY-MM-DD}.json
"""

import json
import logging
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..config import EngineConfig
from ..errors import StoreError, ValidationError
from ..models import (
    DayCacheEntry,
    DayKey,
    EventRecord,
    MagnitudeRange,
    RegionScope,
    now_ms as current_ms,
)
from .staleness import HISTORICAL_DAYS, is_historical, is_stale

# Rough per-event footprint used for size estimates.
BYTES_PER_EVENT = 500


@dataclass
class StoreStats:
    """Cache statistics for one scope (or all scopes)."""

    total_records: int = 0
    total_days: int = 0
    stale_days: int = 0
    historical_records: int = 0
    recent_records: int = 0
    size_estimate_kb: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class RecordStore(ABC):
    """Persistent keyed store of day entries."""

    @abstractmethod
    def get(self, key: DayKey) -> Optional[DayCacheEntry]:
        """Return the entry for ``key`` or None."""

    @abstractmethod
    def put(
        self,
        key: DayKey,
        records: Iterable[EventRecord],
        fetched_at_ms: int,
        coverage: MagnitudeRange,
    ) -> DayCacheEntry:
        """Replace the entry for ``key``."""

    @abstractmethod
    def delete(self, key: DayKey) -> None:
        """Remove ``key``; missing keys are ignored."""

    @abstractmethod
    def list_keys(self, scope: Optional[RegionScope] = None) -> List[DayKey]:
        """Sorted keys, optionally limited to one scope."""

    # --- Derived operations ---------------------------------------------------

    def clear(self, scope: Optional[RegionScope] = None) -> int:
        """Delete every entry (of ``scope``). Returns days removed."""
        keys = self.list_keys(scope)
        for key in keys:
            self.delete(key)
        return len(keys)

    def clear_stale(
        self,
        scope: Optional[RegionScope] = None,
        now_ms: Optional[int] = None,
        config: Optional[EngineConfig] = None,
    ) -> int:
        """Delete stale recent days. Returns the number of records removed."""
        now_ms = now_ms if now_ms is not None else current_ms()
        removed = 0
        for key in self.list_keys(scope):
            entry = self.get(key)
            if entry is not None and is_stale(entry, now_ms, config):
                removed += entry.event_count
                self.delete(key)
        return removed

    def stats(
        self,
        scope: Optional[RegionScope] = None,
        now_ms: Optional[int] = None,
        config: Optional[EngineConfig] = None,
    ) -> StoreStats:
        """Count records and days, split historical/recent."""
        now_ms = now_ms if now_ms is not None else current_ms()
        historical_days = config.historical_days if config else HISTORICAL_DAYS
        stats = StoreStats()
        for key in self.list_keys(scope):
            entry = self.get(key)
            if entry is None:
                continue
            stats.total_days += 1
            if is_historical(key.date, now_ms, historical_days):
                stats.historical_records += entry.event_count
            else:
                stats.recent_records += entry.event_count
                if is_stale(entry, now_ms, config):
                    stats.stale_days += 1
        stats.total_records = stats.historical_records + stats.recent_records
        stats.size_estimate_kb = round(stats.total_records * BYTES_PER_EVENT / 1024)
        return stats


class InMemoryRecordStore(RecordStore):
    """Thread-safe dict-backed store."""

    def __init__(self):
        self._entries: Dict[DayKey, DayCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: DayKey) -> Optional[DayCacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key, records, fetched_at_ms, coverage) -> DayCacheEntry:
        entry = DayCacheEntry(key, tuple(records), fetched_at_ms, coverage)
        with self._lock:
            self._entries[key] = entry
        return entry

    def delete(self, key: DayKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def list_keys(self, scope: Optional[RegionScope] = None) -> List[DayKey]:
        with self._lock:
            keys = list(self._entries)
        return sorted(k for k in keys if scope is None or k.scope == scope)

    def __len__(self) -> int:
        return len(self._entries)


class JsonFileRecordStore(RecordStore):
    """One JSON file per day key.

    Files are written to a temporary sibling and renamed into place, so a
    crash mid-write never leaves a truncated entry behind.
    """

    def __init__(self, cache_dir):
        self._dir = Path(cache_dir)
        self._lock = threading.Lock()
        self._log = logging.getLogger("cache.store")

    def _key_to_path(self, key: DayKey) -> Path:
        return self._dir / key.scope.value / f"{key.date.isoformat()}.json"

    def get(self, key: DayKey) -> Optional[DayCacheEntry]:
        path = self._key_to_path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                doc = json.load(f)
            coverage = MagnitudeRange(**doc["coverage"])
            records = tuple(EventRecord.from_feature(r) for r in doc["records"])
            return DayCacheEntry(key, records, int(doc["fetched_at_ms"]), coverage)
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as exc:
            raise StoreError(f"Failed to read cache entry {key}: {exc}") from exc

    def put(self, key, records, fetched_at_ms, coverage) -> DayCacheEntry:
        entry = DayCacheEntry(key, tuple(records), fetched_at_ms, coverage)
        doc = {
            "key": str(key),
            "fetched_at_ms": fetched_at_ms,
            "coverage": {"min": coverage.min, "max": coverage.max},
            "records": [r.to_feature() for r in entry.records],
        }
        path = self._key_to_path(key)
        with self._lock:
            tmp = None
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(doc, f)
                os.replace(tmp, path)
            except (OSError, TypeError, ValueError) as exc:
                if tmp is not None and os.path.exists(tmp):
                    os.unlink(tmp)
                raise StoreError(f"Failed to write cache entry {key}: {exc}") from exc
        self._log.debug("Stored %s (%d events)", key, entry.event_count)
        return entry

    def delete(self, key: DayKey) -> None:
        path = self._key_to_path(key)
        with self._lock:
            try:
                if path.exists():
                    path.unlink()
            except OSError as exc:
                raise StoreError(f"Failed to delete cache entry {key}: {exc}") from exc

    def list_keys(self, scope: Optional[RegionScope] = None) -> List[DayKey]:
        scopes = [scope] if scope is not None else list(RegionScope)
        keys = []
        for s in scopes:
            scope_dir = self._dir / s.value
            if not scope_dir.is_dir():
                continue
            for path in scope_dir.glob("*.json"):
                try:
                    keys.append(DayKey.parse(f"{path.stem}|{s.value}"))
                except ValueError:
                    self._log.warning("Ignoring unexpected cache file %s", path)
        return sorted(keys)

    def clear(self, scope: Optional[RegionScope] = None) -> int:
        removed = len(self.list_keys(scope))
        targets = [scope] if scope is not None else list(RegionScope)
        with self._lock:
            for s in targets:
                scope_dir = self._dir / s.value
                try:
                    if scope_dir.exists():
                        shutil.rmtree(scope_dir)
                except OSError as exc:
                    raise StoreError(f"Failed to clear {s.value} cache: {exc}") from exc
        self._log.debug("Cleared %d cached days", removed)
        return removed
