"""Tests for the freshness policy."""

from datetime import date, timedelta

from conftest import HOUR_MS, NOW_MS, make_record

from quakecache.cache.staleness import historical_threshold, is_historical, is_stale
from quakecache.config import EngineConfig
from quakecache.models import DayCacheEntry, DayKey, MagnitudeRange, RegionScope

TODAY = date(2024, 3, 15)


def entry(day, fetched_at_ms, records=()):
    return DayCacheEntry(DayKey(day, RegionScope.US), tuple(records), fetched_at_ms, MagnitudeRange())


class TestHistorical:

    def test_threshold_is_28_days_before_today(self):
        assert historical_threshold(NOW_MS) == TODAY - timedelta(days=28)

    def test_boundary(self):
        assert is_historical(TODAY - timedelta(days=29), NOW_MS)
        assert not is_historical(TODAY - timedelta(days=28), NOW_MS)
        assert not is_historical(TODAY, NOW_MS)


class TestIsStale:

    def test_missing_entry_is_stale(self):
        assert is_stale(None, NOW_MS)

    def test_historical_day_never_stale(self):
        old = entry(date(2023, 1, 1), fetched_at_ms=0)
        assert not is_stale(old, NOW_MS)

    def test_recent_day_fresh_within_24h(self):
        recent = entry(TODAY - timedelta(days=2), NOW_MS - 23 * HOUR_MS)
        assert not is_stale(recent, NOW_MS)

    def test_recent_day_stale_after_24h(self):
        recent = entry(TODAY - timedelta(days=2), NOW_MS - 25 * HOUR_MS)
        assert is_stale(recent, NOW_MS)

    def test_empty_recent_day_follows_same_rule(self):
        empty = entry(TODAY, NOW_MS - HOUR_MS)
        assert empty.event_count == 0
        assert not is_stale(empty, NOW_MS)

    def test_thresholds_from_config(self):
        config = EngineConfig(historical_days=7, recent_max_age_hours=1)
        day = TODAY - timedelta(days=10)
        assert not is_stale(entry(day, 0), NOW_MS, config)
        recent = entry(TODAY, NOW_MS - 2 * HOUR_MS, [make_record("ev1", TODAY)])
        assert is_stale(recent, NOW_MS, config)
