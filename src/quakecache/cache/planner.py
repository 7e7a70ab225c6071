"""
Query planning: split a query's days into cached and stale days.
"""

import logging
from typing import Callable, List, Optional

from ..config import EngineConfig
from ..models import CacheQuery, EventRecord, MagnitudeRange, QueryPlan, now_ms
from .staleness import is_stale
from .store import RecordStore


class QueryPlanner:
    """Classify each day of a query as reusable or needing a fetch.

    A day is cached only when its entry exists, is fresh, and was
    fetched with a magnitude range covering the query's range. A day
    fetched at ``min=4`` cannot answer a ``min=2`` query; it is fetched
    again in full rather than patched with the missing band.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], int] = now_ms,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.clock = clock
        self.config = config or EngineConfig()
        self._log = logging.getLogger("cache.planner")

    def plan(self, query: CacheQuery) -> QueryPlan:
        """Return the chronological cached/stale partition of ``query``."""
        now = self.clock()
        cached, stale = [], []
        for key in query.day_keys:
            entry = self.store.get(key)
            if (
                entry is None
                or is_stale(entry, now, self.config)
                or not entry.coverage.covers(query.magnitude)
            ):
                stale.append(key)
            else:
                cached.append(key)

        self._log.debug(
            "Planned %s..%s (%s): %d cached, %d stale",
            query.start_date, query.end_date, query.scope.value,
            len(cached), len(stale),
        )
        return QueryPlan(tuple(cached), tuple(stale))

    def load_cached(self, plan: QueryPlan, magnitude: MagnitudeRange) -> List[EventRecord]:
        """Records of the plan's cached days within ``magnitude``."""
        records: List[EventRecord] = []
        for key in plan.cached_days:
            entry = self.store.get(key)
            if entry is None:
                continue
            records.extend(r for r in entry.records if magnitude.contains(r.magnitude))
        return records
