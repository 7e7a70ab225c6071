"""
Chunk sizing and run coalescing.

The upstream caps every response at 20,000 records, and event density
per day climbs steeply as the magnitude floor drops. Chunk spans are a
tunable policy: only their monotonicity (lower floor, smaller or equal
span) is relied on.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Tuple

from ..models import DayKey, day_start_ms

# (magnitude floor, span, span when the whole request is short)
CHUNK_SPAN_TABLE: Tuple[Tuple[float, int, int], ...] = (
    (6.0, 3650, 3650),
    (5.0, 365, 365),
    (4.0, 180, 180),
    (3.0, 60, 14),
    (2.0, 14, 7),
    (1.0, 7, 7),
    (0.0, 3, 3),
)
NEGATIVE_SPAN = (1, 2)


def chunk_span_days(min_magnitude: float, is_short_range: bool = False) -> int:
    """Maximum number of days one upstream request may cover.

    Args:
        min_magnitude: Query's magnitude floor.
        is_short_range: True when the whole request spans 14 days or
            less, which bounds total volume on its own.
    """
    for floor, span, short_span in CHUNK_SPAN_TABLE:
        if min_magnitude >= floor:
            return short_span if is_short_range else span
    return NEGATIVE_SPAN[1] if is_short_range else NEGATIVE_SPAN[0]


@dataclass(frozen=True)
class Chunk:
    """A contiguous run of stale days fetched with one window."""

    days: Tuple[DayKey, ...]

    @property
    def first(self) -> date:
        return self.days[0].date

    @property
    def last(self) -> date:
        return self.days[-1].date

    @property
    def start_ms(self) -> int:
        return day_start_ms(self.first)

    @property
    def end_ms(self) -> int:
        return day_start_ms(self.last + timedelta(days=1))

    @property
    def label(self) -> str:
        if self.first == self.last:
            return self.first.isoformat()
        return f"{self.first.isoformat()} to {self.last.isoformat()}"

    def __len__(self) -> int:
        return len(self.days)


def coalesce_runs(days: Iterable[DayKey], max_span: int) -> List[Chunk]:
    """Group sorted days into maximal contiguous runs of at most ``max_span``.

    A run is broken by a gap between days or when it reaches
    ``max_span`` days.
    """
    if max_span < 1:
        raise ValueError("max_span must be >= 1")

    chunks: List[Chunk] = []
    run: List[DayKey] = []
    for key in sorted(set(days)):
        if run and (
            key.date - run[-1].date != timedelta(days=1)
            or len(run) >= max_span
            or key.scope != run[-1].scope
        ):
            chunks.append(Chunk(tuple(run)))
            run = []
        run.append(key)
    if run:
        chunks.append(Chunk(tuple(run)))
    return chunks
