"""Tests for chunk sizing and run coalescing."""

from datetime import date, timedelta

import pytest

from quakecache.models import DayKey, RegionScope, day_start_ms
from quakecache.pipeline.chunking import Chunk, chunk_span_days, coalesce_runs


def keys(start, count, scope=RegionScope.US):
    return [DayKey(start + timedelta(days=i), scope) for i in range(count)]


class TestChunkSpan:

    @pytest.mark.parametrize("magnitude,expected", [
        (7.0, 3650), (6.0, 3650), (5.0, 365), (4.5, 180), (3.0, 60),
        (2.5, 14), (1.0, 7), (0.0, 3), (-1.0, 1),
    ])
    def test_long_range_table(self, magnitude, expected):
        assert chunk_span_days(magnitude) == expected

    @pytest.mark.parametrize("magnitude,expected", [
        (3.0, 14), (2.0, 7), (1.0, 7), (0.0, 3), (-2.0, 2),
    ])
    def test_short_range_table(self, magnitude, expected):
        assert chunk_span_days(magnitude, is_short_range=True) == expected

    @pytest.mark.parametrize("short", [False, True])
    def test_lower_floor_never_widens_span(self, short):
        magnitudes = [m / 2 for m in range(-4, 21)]
        spans = [chunk_span_days(m, short) for m in magnitudes]
        assert spans == sorted(spans)


class TestCoalesceRuns:

    def test_contiguous_days_single_chunk(self):
        chunks = coalesce_runs(keys(date(2024, 1, 1), 5), max_span=10)
        assert len(chunks) == 1
        assert chunks[0].first == date(2024, 1, 1)
        assert chunks[0].last == date(2024, 1, 5)

    def test_gap_breaks_run(self):
        days = keys(date(2024, 1, 1), 3) + keys(date(2024, 1, 10), 2)
        chunks = coalesce_runs(days, max_span=30)
        assert [len(c) for c in chunks] == [3, 2]

    def test_max_span_breaks_run(self):
        chunks = coalesce_runs(keys(date(2024, 1, 1), 10), max_span=3)
        assert [len(c) for c in chunks] == [3, 3, 3, 1]

    def test_unsorted_and_duplicate_input(self):
        days = keys(date(2024, 1, 1), 4)
        chunks = coalesce_runs(list(reversed(days)) + days[:2], max_span=10)
        assert len(chunks) == 1
        assert len(chunks[0]) == 4

    def test_scope_change_breaks_run(self):
        days = keys(date(2024, 1, 1), 2) + keys(date(2024, 1, 3), 2, RegionScope.WORLDWIDE)
        assert len(coalesce_runs(days, max_span=10)) == 2

    def test_every_day_covered_once(self):
        days = keys(date(2024, 1, 1), 20) + keys(date(2024, 2, 1), 7)
        chunks = coalesce_runs(days, max_span=6)
        covered = [k for c in chunks for k in c.days]
        assert sorted(covered) == sorted(days)

    def test_empty(self):
        assert coalesce_runs([], max_span=3) == []

    def test_invalid_span(self):
        with pytest.raises(ValueError):
            coalesce_runs(keys(date(2024, 1, 1), 1), max_span=0)


class TestChunk:

    def test_window_covers_whole_days(self):
        chunk = Chunk(tuple(keys(date(2024, 1, 1), 3)))
        assert chunk.start_ms == day_start_ms(date(2024, 1, 1))
        assert chunk.end_ms == day_start_ms(date(2024, 1, 4))
        assert chunk.label == "2024-01-01 to 2024-01-03"

    def test_single_day_label(self):
        chunk = Chunk(tuple(keys(date(2024, 1, 1), 1)))
        assert chunk.label == "2024-01-01"
