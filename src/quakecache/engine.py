"""
Cache engine: the public query / top-off interface.

Ties the planner, fetch orchestrator, top-off engine and progress
reporter together around one record store. Top-level operations are
mutually exclusive: a second query or a cache clear while one runs is
rejected, a top-off while anything runs is a no-op.

Usage::

    engine = CacheEngine()
    result = engine.query(CacheQuery(date(2024, 1, 1), date(2024, 1, 7),
                                     MagnitudeRange(min=4.0), RegionScope.US))
    print(result.summary["total"])
    new = engine.top_off()
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, timedelta
from typing import Callable, Dict, Iterator, List, Optional

from .cache.merge import merge
from .cache.planner import QueryPlanner
from .cache.store import InMemoryRecordStore, JsonFileRecordStore, RecordStore, StoreStats
from .config import EngineConfig
from .errors import OperationInProgress, StoreError, UpstreamError, ValidationError
from .extractors.base_client import BaseClient
from .extractors.usgs import USGSClient
from .models import CacheQuery, DayKey, EventRecord, now_ms, utc_day
from .pipeline.cancellation import CancelToken
from .pipeline.orchestrator import FetchOrchestrator
from .pipeline.progress import Operation, ProgressCallback, ProgressReporter
from .pipeline.topoff import RefreshStrategy, TopOffEngine, choose_refresh_strategy
from .quality.integrity import IntegrityReport, check_cache_integrity
from .result import QueryResult, TopOffResult, summarize, utcnow

# The upstream holds nothing older than this.
EARLIEST_DATE = date(1500, 1, 1)


class CacheEngine:
    """Serve range/magnitude queries from the day cache, fetching as needed.

    Args:
        store: Record store; defaults to a JSON file store when
            ``config.cache_dir`` is set, else an in-memory store.
        client: Upstream client; defaults to ``USGSClient``.
        config: Engine settings; read from the environment if omitted.
        clock: Returns the current time in epoch ms.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        client: Optional[BaseClient] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or EngineConfig()
        if store is None:
            store = (
                JsonFileRecordStore(self.config.cache_dir)
                if self.config.cache_dir
                else InMemoryRecordStore()
            )
        self.store = store
        self.client = client or USGSClient(self.config)
        self.clock = clock
        self.reporter = ProgressReporter(clock)
        self.planner = QueryPlanner(store, clock, self.config)
        self.orchestrator = FetchOrchestrator(
            self.client, store, self.reporter, self.config, clock
        )
        self.topoff_engine = TopOffEngine(self.client, clock, self.config)

        self._guard = threading.Lock()
        self._cancel: Optional[CancelToken] = None
        self._records: List[EventRecord] = []
        self._last_query: Optional[CacheQuery] = None
        self.last_refresh_ms: Optional[int] = None
        self._log = logging.getLogger("cache.engine")

    # --- State ----------------------------------------------------------------

    @property
    def records(self) -> List[EventRecord]:
        """Records currently held (last query plus top-offs), newest first."""
        return list(self._records)

    @property
    def last_query(self) -> Optional[CacheQuery]:
        return self._last_query

    @property
    def is_busy(self) -> bool:
        return self._guard.locked()

    def subscribe_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        return self.reporter.subscribe(callback)

    def cancel(self) -> bool:
        """Ask the running query to stop after its in-flight request."""
        token = self._cancel
        if token is None:
            return False
        token.cancel()
        return True

    # --- Query ----------------------------------------------------------------

    def validate(self, query: CacheQuery) -> CacheQuery:
        """Clamp to the upstream's data range and reject empty ranges."""
        today = utc_day(self.clock())
        start = max(query.start_date, EARLIEST_DATE)
        end = min(query.end_date, today)
        if start > end:
            raise ValidationError(
                f"Start date {query.start_date} must not be after end date {query.end_date}"
            )
        return replace(query, start_date=start, end_date=end)

    def query(
        self,
        query: CacheQuery,
        on_partial_result: Optional[Callable[[List[EventRecord]], None]] = None,
        ascending: bool = False,
        supersede: bool = False,
    ) -> QueryResult:
        """Return every record matching ``query``, fetching what the cache lacks.

        Args:
            query: Dates, magnitude range and scope.
            on_partial_result: Receives the merged cached + fetched-so-far
                records while a fetch runs.
            ascending: Oldest first instead of newest first.
            supersede: Cancel a running query and wait for it instead of
                failing with OperationInProgress.

        Raises:
            ValidationError: Invalid query; raised before any I/O.
            OperationInProgress: Another operation is running.
            UpstreamError: A fetch failed; ``exc.partial_records`` holds
                the cached and already-fetched records.
        """
        if supersede:
            self.cancel()
            self._guard.acquire()
        elif not self._guard.acquire(blocking=False):
            raise OperationInProgress("A cache operation is already running")

        cancel = CancelToken()
        self._cancel = cancel
        try:
            return self._run_query(query, on_partial_result, ascending, cancel)
        finally:
            self._cancel = None
            self._guard.release()

    def _run_query(self, query, on_partial_result, ascending, cancel) -> QueryResult:
        started = utcnow()
        calls_before = self.client.api_calls

        with self.reporter.tracking("Checking cache..."):
            query = self.validate(query)
            plan = self.planner.plan(query)
            cached = self.planner.load_cached(plan, query.magnitude)
            self._log.info(
                "Query %s..%s M%s-%s (%s): %d cached days, %d stale days",
                query.start_date, query.end_date, query.magnitude.min,
                query.magnitude.max, query.scope.value,
                len(plan.cached_days), len(plan.stale_days),
            )

            fresh: List[EventRecord] = []
            chunks = 0
            cancelled = False
            store_error = None

            if plan.stale_days:
                self.reporter.report(
                    Operation.FETCHING,
                    total=len(plan.stale_days),
                    message=f"Fetching {len(plan.stale_days)} missing days...",
                    events_loaded=len(cached),
                )

                forward = None
                if on_partial_result is not None:
                    if cached:
                        on_partial_result(merge(cached, [], ascending))

                    def forward(snapshot):
                        in_range = [r for r in snapshot if query.magnitude.contains(r.magnitude)]
                        on_partial_result(merge(cached, in_range, ascending))

                try:
                    outcome = self.orchestrator.fetch(
                        plan.stale_days,
                        query.magnitude,
                        query.scope,
                        is_short_range=query.is_short_range,
                        on_partial_result=forward,
                        cancel=cancel,
                        events_base=len(cached),
                    )
                except UpstreamError as exc:
                    exc.partial_records = merge(cached, exc.partial_records, ascending)
                    raise

                fresh = [r for r in outcome.records if query.magnitude.contains(r.magnitude)]
                chunks = outcome.chunks_done
                cancelled = outcome.cancelled
                if outcome.store_errors:
                    store_error = "; ".join(outcome.store_errors)

            records = merge(cached, fresh, ascending)

        completed = utcnow()
        self._records = records if not ascending else list(reversed(records))
        self._last_query = query
        self.last_refresh_ms = self.clock()

        return QueryResult(
            records=records,
            summary=summarize(records),
            plan=plan,
            cached_count=len(cached),
            fetched_count=len(fresh),
            api_calls=self.client.api_calls - calls_before,
            chunks=chunks,
            cancelled=cancelled,
            store_error=store_error,
            started_at=started,
            completed_at=completed,
            duration_seconds=(completed - started).total_seconds(),
        )

    # --- Top-off --------------------------------------------------------------

    def top_off(self) -> TopOffResult:
        """Fetch events newer than the newest record held.

        A no-op when another operation runs or nothing has been loaded.
        Returns ``full_refresh_required`` when the gap is too large.
        """
        if not self._guard.acquire(blocking=False):
            return TopOffResult()
        try:
            query = self._last_query
            if query is None or not self._records:
                return TopOffResult()

            latest = max(r.timestamp_ms for r in self._records)
            with self.reporter.tracking("Checking for new events..."):
                self.reporter.report(Operation.FETCHING, 1, 1, "Fetching new events...")
                result = self.topoff_engine.top_off(
                    latest,
                    query.magnitude,
                    query.scope,
                    known_ids={r.id for r in self._records},
                )
                if result.full_refresh_required:
                    return result

                if result.records:
                    self.reporter.report(
                        Operation.STORING, 1, 1, "Caching new events...",
                        events_loaded=result.count,
                    )
                    result.store_error = self._store_top_off(result.records, latest, query)
                    self._records = merge(self._records, result.records)

            self.last_refresh_ms = self.clock()
            return result
        finally:
            self._guard.release()

    def _store_top_off(self, records, latest_ms: int, query: CacheQuery) -> Optional[str]:
        """Fold top-off records into the day entries they belong to.

        Existing entries keep their fetch time and coverage and are only
        extended when the top-off range covers them. A day without an
        entry is written only if it began after ``latest_ms``, so the
        window covers the whole day.
        """
        by_day: Dict[date, List[EventRecord]] = defaultdict(list)
        for record in records:
            by_day[record.day].append(record)

        now = self.clock()
        errors = []
        for day, new in sorted(by_day.items()):
            key = DayKey(day, query.scope)
            try:
                entry = self.store.get(key)
                if entry is not None:
                    if not query.magnitude.covers(entry.coverage):
                        continue
                    self.store.put(
                        key, merge(entry.records, new), entry.fetched_at_ms, entry.coverage
                    )
                elif key.start_ms > latest_ms:
                    self.store.put(key, new, now, query.magnitude)
            except StoreError as exc:
                self._log.warning("Cache write failed for %s: %s", key, exc)
                errors.append(str(exc))
        return "; ".join(errors) or None

    # --- Periodic refresh -----------------------------------------------------

    def refresh(self, interval_minutes: float):
        """Run whichever refresh the time since the last one calls for.

        Returns the TopOffResult or QueryResult produced, or None when
        the refresh was skipped.
        """
        strategy = choose_refresh_strategy(
            self.last_refresh_ms, interval_minutes, self.clock(), self.config
        )
        self._log.debug("Refresh strategy: %s", strategy.value)
        if strategy is RefreshStrategy.SKIP or self._last_query is None:
            return None

        if strategy is RefreshStrategy.TOP_OFF:
            result = self.top_off()
            if not result.full_refresh_required:
                return result

        return self.query(self._rolled_forward(self._last_query))

    def _rolled_forward(self, query: CacheQuery) -> CacheQuery:
        """Shift ``query`` so it ends today, keeping its span."""
        today = utc_day(self.clock())
        shift = today - query.end_date
        if shift <= timedelta(0):
            return query
        return replace(
            query, start_date=query.start_date + shift, end_date=today
        )

    # --- Cache maintenance ----------------------------------------------------

    def clear_cache(self, scope=None) -> int:
        """Delete all cached days (of ``scope``). Returns days removed.

        Raises:
            OperationInProgress: A query or top-off is running.
        """
        with self._exclusive(), self.reporter.tracking("Clearing cache..."):
            removed = self.store.clear(scope)
        self._log.info("Cleared %d cached days", removed)
        return removed

    def clear_stale(self, scope=None) -> int:
        """Delete stale recent days. Returns records removed.

        Raises:
            OperationInProgress: A query or top-off is running.
        """
        with self._exclusive(), self.reporter.tracking("Clearing stale data..."):
            removed = self.store.clear_stale(scope, self.clock(), self.config)
        self._log.info("Cleared %d stale records", removed)
        return removed

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._guard.acquire(blocking=False):
            raise OperationInProgress("A cache operation is already running")
        try:
            yield
        finally:
            self._guard.release()

    def stats(self, scope=None) -> StoreStats:
        return self.store.stats(scope, self.clock(), self.config)

    def check_integrity(self, scope=None) -> IntegrityReport:
        return check_cache_integrity(self.store, scope)

    def get_telemetry(self) -> Dict:
        return self.client.get_telemetry()
