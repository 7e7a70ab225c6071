"""
Fetch orchestrator.

Turns a list of stale day keys into sequential, size-capped upstream
requests, writes each completed chunk through the record store, and
streams de-duplicated partial results back to the caller.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..cache.store import RecordStore
from ..config import EngineConfig
from ..errors import StoreError, UpstreamError
from ..extractors.base_client import BaseClient
from ..models import DayKey, EventRecord, MagnitudeRange, RegionScope, now_ms
from .cancellation import CancelToken
from .chunking import Chunk, chunk_span_days, coalesce_runs
from .progress import Operation, ProgressReporter

PartialResultCallback = Callable[[Tuple[EventRecord, ...]], None]


@dataclass
class FetchOutcome:
    """Result of one orchestrator run."""

    records: Tuple[EventRecord, ...] = ()
    chunks_total: int = 0
    chunks_done: int = 0
    days_stored: int = 0
    store_errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def store_ok(self) -> bool:
        return not self.store_errors


class FetchOrchestrator:
    """Fetch stale days chunk by chunk.

    Usage::

        orchestrator = FetchOrchestrator(USGSClient(), store, reporter)
        outcome = orchestrator.fetch(
            plan.stale_days,
            MagnitudeRange(min=4.0),
            RegionScope.US,
            on_partial_result=lambda records: print(len(records)),
        )
    """

    def __init__(
        self,
        client: BaseClient,
        store: RecordStore,
        reporter: ProgressReporter,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.store = store
        self.reporter = reporter
        self.config = config or client.config
        self.clock = clock
        self._log = logging.getLogger("pipeline.orchestrator")

    def plan_chunks(
        self,
        stale_days: Sequence[DayKey],
        magnitude: MagnitudeRange,
        is_short_range: bool = False,
    ) -> List[Chunk]:
        span = chunk_span_days(magnitude.min, is_short_range)
        return coalesce_runs(stale_days, span)

    def fetch(
        self,
        stale_days: Sequence[DayKey],
        magnitude: MagnitudeRange,
        scope: RegionScope,
        is_short_range: bool = False,
        on_partial_result: Optional[PartialResultCallback] = None,
        cancel: Optional[CancelToken] = None,
        events_base: int = 0,
    ) -> FetchOutcome:
        """Fetch and store every stale day.

        Args:
            stale_days: Days to fetch, any order.
            magnitude: Range requested upstream and recorded as coverage.
            scope: Region scope of the days.
            is_short_range: Whether the originating query spans <= 14 days.
            on_partial_result: Receives a snapshot of everything fetched so
                far every ``partial_every`` chunks and after the last one.
            cancel: Stops further chunk requests once set.
            events_base: Events the caller already holds (cached days),
                added to the reported ``events_loaded``.

        Returns:
            FetchOutcome with the de-duplicated records.

        Raises:
            UpstreamError: A chunk failed; remaining chunks are skipped and
                the records fetched so far are on ``exc.partial_records``.
        """
        chunks = self.plan_chunks(stale_days, magnitude, is_short_range)
        outcome = FetchOutcome(chunks_total=len(chunks))
        if not chunks:
            return outcome

        self._log.info(
            "Fetching %d stale days in %d chunks (M%s+, %s)",
            len(set(stale_days)), len(chunks), magnitude.min, scope.value,
        )

        accumulated: Dict[str, EventRecord] = {}
        emitted_at = 0
        total = len(chunks)

        for index, chunk in enumerate(chunks, start=1):
            if cancel is not None and cancel.cancelled:
                self._log.info("Fetch cancelled before chunk %d/%d", index, total)
                outcome.cancelled = True
                break

            # Report before the request so callers see the chunk in flight.
            self.reporter.report(
                Operation.FETCHING,
                step=index,
                total=total,
                message=f"Fetching {chunk.label}...",
                events_loaded=events_base + len(accumulated),
                current_range=chunk.label,
            )

            try:
                fresh = self.client.fetch_window(
                    chunk.start_ms, chunk.end_ms, magnitude, scope
                )
            except UpstreamError as exc:
                self._log.error(
                    "Chunk %s failed (%s); aborting %d remaining chunks",
                    chunk.label, exc, total - index,
                )
                exc.attach_partial(accumulated.values())
                raise

            fresh = self._within(chunk, fresh)
            for record in fresh:
                accumulated[record.id] = record
            outcome.chunks_done += 1

            self.reporter.report(
                Operation.STORING,
                step=index,
                total=total,
                message=f"Caching {chunk.label}...",
                events_loaded=events_base + len(accumulated),
                current_range=chunk.label,
            )
            self._store_chunk(chunk, fresh, magnitude, outcome)

            if on_partial_result is not None and (
                index % self.config.partial_every == 0 or index == total
            ):
                on_partial_result(tuple(accumulated.values()))
                emitted_at = index

            if index < total:
                time.sleep(self.config.chunk_delay)

        if (
            outcome.cancelled
            and on_partial_result is not None
            and emitted_at != outcome.chunks_done
        ):
            on_partial_result(tuple(accumulated.values()))

        outcome.records = tuple(accumulated.values())
        self._log.info(
            "Fetched %d events in %d/%d chunks",
            len(outcome.records), outcome.chunks_done, total,
        )
        return outcome

    # --- Internal helpers -----------------------------------------------------

    @staticmethod
    def _within(chunk: Chunk, records: List[EventRecord]) -> List[EventRecord]:
        """Drop records the upstream returned on the window's closing edge."""
        dates = {key.date for key in chunk.days}
        return [r for r in records if r.day in dates]

    def _store_chunk(
        self,
        chunk: Chunk,
        records: List[EventRecord],
        magnitude: MagnitudeRange,
        outcome: FetchOutcome,
    ) -> None:
        """Write one entry per day of the chunk, including empty days."""
        by_day: Dict[date, List[EventRecord]] = defaultdict(list)
        for record in records:
            by_day[record.day].append(record)

        fetched_at = self.clock()
        for key in chunk.days:
            try:
                self.store.put(key, by_day.get(key.date, []), fetched_at, magnitude)
                outcome.days_stored += 1
            except StoreError as exc:
                self._log.warning("Cache write failed for %s: %s", key, exc)
                outcome.store_errors.append(str(exc))
