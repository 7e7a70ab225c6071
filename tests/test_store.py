"""Tests for the record stores and their derived operations."""

from datetime import date, timedelta

import pytest

from conftest import HOUR_MS, NOW_MS, make_record

from quakecache.cache.store import InMemoryRecordStore, JsonFileRecordStore
from quakecache.errors import StoreError
from quakecache.models import DayKey, MagnitudeRange, RegionScope

TODAY = date(2024, 3, 15)
OLD_DAY = date(2024, 1, 10)


@pytest.fixture(params=["memory", "json"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore()
    return JsonFileRecordStore(tmp_path / "cache")


def us(day):
    return DayKey(day, RegionScope.US)


class TestRecordStore:

    def test_get_missing(self, any_store):
        assert any_store.get(us(OLD_DAY)) is None

    def test_put_and_get(self, any_store):
        records = [make_record("ev1", OLD_DAY, properties={"place": "Reno, NV"})]
        any_store.put(us(OLD_DAY), records, NOW_MS, MagnitudeRange(min=2.5))

        entry = any_store.get(us(OLD_DAY))
        assert entry.records == tuple(records)
        assert entry.records[0].properties["place"] == "Reno, NV"
        assert entry.fetched_at_ms == NOW_MS
        assert entry.coverage == MagnitudeRange(min=2.5)

    def test_empty_day_is_a_real_entry(self, any_store):
        any_store.put(us(OLD_DAY), [], NOW_MS, MagnitudeRange())
        entry = any_store.get(us(OLD_DAY))
        assert entry is not None
        assert entry.event_count == 0

    def test_put_replaces(self, any_store):
        any_store.put(us(OLD_DAY), [make_record("ev1", OLD_DAY)], NOW_MS, MagnitudeRange())
        any_store.put(us(OLD_DAY), [make_record("ev2", OLD_DAY)], NOW_MS, MagnitudeRange())
        assert [r.id for r in any_store.get(us(OLD_DAY)).records] == ["ev2"]

    def test_list_keys_by_scope(self, any_store):
        any_store.put(us(OLD_DAY), [], NOW_MS, MagnitudeRange())
        any_store.put(DayKey(OLD_DAY, RegionScope.WORLDWIDE), [], NOW_MS, MagnitudeRange())
        assert any_store.list_keys(RegionScope.US) == [us(OLD_DAY)]
        assert len(any_store.list_keys()) == 2

    def test_clear_scope(self, any_store):
        any_store.put(us(OLD_DAY), [], NOW_MS, MagnitudeRange())
        any_store.put(DayKey(OLD_DAY, RegionScope.WORLDWIDE), [], NOW_MS, MagnitudeRange())
        assert any_store.clear(RegionScope.US) == 1
        assert any_store.list_keys() == [DayKey(OLD_DAY, RegionScope.WORLDWIDE)]

    def test_clear_stale_keeps_historical_and_fresh(self, any_store):
        stale_day = TODAY - timedelta(days=3)
        any_store.put(us(OLD_DAY), [make_record("old", OLD_DAY)], 0, MagnitudeRange())
        any_store.put(us(TODAY), [make_record("new", TODAY, hour=1)], NOW_MS, MagnitudeRange())
        any_store.put(
            us(stale_day),
            [make_record("s1", stale_day), make_record("s2", stale_day, hour=2)],
            NOW_MS - 48 * HOUR_MS,
            MagnitudeRange(),
        )

        assert any_store.clear_stale(RegionScope.US, NOW_MS) == 2
        assert any_store.list_keys() == [us(OLD_DAY), us(TODAY)]

    def test_stats(self, any_store):
        stale_day = TODAY - timedelta(days=3)
        any_store.put(us(OLD_DAY), [make_record("old", OLD_DAY)], 0, MagnitudeRange())
        any_store.put(us(TODAY), [make_record("new", TODAY, hour=1)], NOW_MS, MagnitudeRange())
        any_store.put(us(stale_day), [], NOW_MS - 48 * HOUR_MS, MagnitudeRange())

        stats = any_store.stats(RegionScope.US, NOW_MS)
        assert stats.total_days == 3
        assert stats.total_records == 2
        assert stats.historical_records == 1
        assert stats.recent_records == 1
        assert stats.stale_days == 1
        assert stats.to_dict()["size_estimate_kb"] == 1


class TestJsonFileRecordStore:

    def test_layout(self, tmp_path):
        store = JsonFileRecordStore(tmp_path)
        store.put(us(OLD_DAY), [], NOW_MS, MagnitudeRange())
        assert (tmp_path / "us" / "2024-01-10.json").exists()
        assert not list((tmp_path / "us").glob("*.tmp"))

    def test_corrupt_entry_raises_store_error(self, tmp_path):
        store = JsonFileRecordStore(tmp_path)
        (tmp_path / "us").mkdir()
        (tmp_path / "us" / "2024-01-10.json").write_text("{not json")
        with pytest.raises(StoreError):
            store.get(us(OLD_DAY))

    def test_inverted_coverage_raises_store_error(self, tmp_path):
        store = JsonFileRecordStore(tmp_path)
        (tmp_path / "us").mkdir()
        (tmp_path / "us" / "2024-01-10.json").write_text(
            '{"fetched_at_ms": 0, "coverage": {"min": 5.0, "max": 2.0}, "records": []}'
        )
        with pytest.raises(StoreError, match="2024-01-10"):
            store.get(us(OLD_DAY))

    def test_failed_write_leaves_no_temp_file(self, tmp_path):
        store = JsonFileRecordStore(tmp_path)
        bad = make_record("ev1", OLD_DAY, properties={"tags": {"a", "b"}})
        with pytest.raises(StoreError):
            store.put(us(OLD_DAY), [bad], NOW_MS, MagnitudeRange())
        assert list((tmp_path / "us").iterdir()) == []

    def test_unwritable_directory_raises_store_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = JsonFileRecordStore(blocker)
        with pytest.raises(StoreError):
            store.put(us(OLD_DAY), [], NOW_MS, MagnitudeRange())

    def test_survives_reopen(self, tmp_path):
        JsonFileRecordStore(tmp_path).put(
            us(OLD_DAY), [make_record("ev1", OLD_DAY)], NOW_MS, MagnitudeRange()
        )
        entry = JsonFileRecordStore(tmp_path).get(us(OLD_DAY))
        assert [r.id for r in entry.records] == ["ev1"]

    def test_ignores_stray_files(self, tmp_path):
        store = JsonFileRecordStore(tmp_path)
        store.put(us(OLD_DAY), [], NOW_MS, MagnitudeRange())
        (tmp_path / "us" / "notes.json").write_text("{}")
        assert store.list_keys() == [us(OLD_DAY)]
