"""Tests for top-off refresh and refresh strategy selection."""

from datetime import date

import pytest

from conftest import HOUR_MS, NOW_MS, FakeClient, make_record

from quakecache.config import EngineConfig
from quakecache.models import MS_PER_DAY, EventRecord, MagnitudeRange, RegionScope
from quakecache.pipeline.topoff import RefreshStrategy, TopOffEngine, choose_refresh_strategy

TODAY = date(2024, 3, 15)
MINUTE_MS = 60 * 1000


def at(ms, event_id, magnitude=4.0):
    return EventRecord(event_id, ms, magnitude, 10.0, -118.0, 34.0)


class TestTopOff:

    def test_fetches_only_after_latest_known(self, clock):
        latest = NOW_MS - 2 * HOUR_MS
        client = FakeClient([at(latest, "known"), at(latest + HOUR_MS, "new")])
        result = TopOffEngine(client, clock).top_off(
            latest, MagnitudeRange(), RegionScope.US, known_ids={"known"}
        )

        assert [r.id for r in result.records] == ["new"]
        assert result.count == 1
        assert client.calls[0][0] == latest + 1
        assert client.calls[0][1] == NOW_MS

    def test_known_ids_are_not_returned(self, clock):
        latest = NOW_MS - 2 * HOUR_MS
        client = FakeClient([at(latest + HOUR_MS, "dup")])
        result = TopOffEngine(client, clock).top_off(
            latest, MagnitudeRange(), RegionScope.US, known_ids={"dup"}
        )
        assert result.count == 0
        assert not result.full_refresh_required

    def test_noop_when_latest_is_now(self, clock):
        client = FakeClient()
        result = TopOffEngine(client, clock).top_off(NOW_MS, MagnitudeRange(), RegionScope.US)
        assert result.count == 0
        assert client.calls == []

    def test_large_gap_requires_full_refresh(self, clock):
        client = FakeClient()
        result = TopOffEngine(client, clock).top_off(
            NOW_MS - 30 * MS_PER_DAY, MagnitudeRange(), RegionScope.US
        )
        assert result.full_refresh_required
        assert client.calls == []

    def test_gap_of_exactly_the_boundary_still_tops_off(self, clock):
        client = FakeClient()
        result = TopOffEngine(client, clock).top_off(
            NOW_MS - 28 * MS_PER_DAY, MagnitudeRange(), RegionScope.US
        )
        assert not result.full_refresh_required
        assert len(client.calls) == 1

    def test_magnitude_range_applied(self, clock):
        latest = NOW_MS - 2 * HOUR_MS
        client = FakeClient([at(latest + 10, "small", 1.0), at(latest + 20, "big", 5.0)])
        result = TopOffEngine(client, clock).top_off(
            latest, MagnitudeRange(min=4.0), RegionScope.US
        )
        assert [r.id for r in result.records] == ["big"]

    def test_results_newest_first(self, clock):
        latest = NOW_MS - 3 * HOUR_MS
        client = FakeClient([at(latest + HOUR_MS, "older"), at(latest + 2 * HOUR_MS, "newer")])
        result = TopOffEngine(client, clock).top_off(latest, MagnitudeRange(), RegionScope.US)
        assert [r.id for r in result.records] == ["newer", "older"]

    def test_to_dict(self, clock):
        client = FakeClient([make_record("ev1", TODAY, hour=11)])
        result = TopOffEngine(client, clock).top_off(
            NOW_MS - 6 * HOUR_MS, MagnitudeRange(), RegionScope.US
        )
        assert result.to_dict() == {
            "count": 1, "full_refresh_required": False, "store_error": None,
        }


class TestRefreshStrategy:

    def test_never_refreshed_skips(self):
        assert choose_refresh_strategy(None, 5, NOW_MS) is RefreshStrategy.SKIP

    def test_timer_drift_tolerance(self):
        # 4.6 of 5 minutes is past 90%.
        assert choose_refresh_strategy(NOW_MS - int(4.6 * MINUTE_MS), 5, NOW_MS) \
            is RefreshStrategy.TOP_OFF
        assert choose_refresh_strategy(NOW_MS - 4 * MINUTE_MS, 5, NOW_MS) \
            is RefreshStrategy.SKIP

    @pytest.mark.parametrize("gap_ms,expected", [
        (10 * MINUTE_MS, RefreshStrategy.TOP_OFF),
        (25 * HOUR_MS, RefreshStrategy.NORMAL),
        (28 * MS_PER_DAY, RefreshStrategy.FULL),
        (40 * MS_PER_DAY, RefreshStrategy.FULL),
    ])
    def test_gap_thresholds(self, gap_ms, expected):
        assert choose_refresh_strategy(NOW_MS - gap_ms, 5, NOW_MS) is expected

    def test_thresholds_from_config(self):
        config = EngineConfig(historical_days=2, recent_max_age_hours=1)
        assert choose_refresh_strategy(NOW_MS - 3 * MS_PER_DAY, 5, NOW_MS, config) \
            is RefreshStrategy.FULL
