"""
Record merging and de-duplication.

Identity is the upstream event id. When the same id arrives twice the
later copy wins, so upstream revisions supersede cached values.
"""

from typing import Dict, Iterable, List

from ..models import EventRecord


def dedupe(records: Iterable[EventRecord]) -> List[EventRecord]:
    """Drop repeated ids, keeping the last copy at the first position seen."""
    by_id: Dict[str, EventRecord] = {}
    for record in records:
        by_id[record.id] = record
    return list(by_id.values())


def sort_records(records: Iterable[EventRecord], ascending: bool = False) -> List[EventRecord]:
    """Order by occurrence time, ties broken by id so the order is total."""
    ordered = sorted(records, key=lambda r: (r.timestamp_ms, r.id))
    if not ascending:
        ordered.reverse()
    return ordered


def merge(
    cached: Iterable[EventRecord],
    fresh: Iterable[EventRecord],
    ascending: bool = False,
) -> List[EventRecord]:
    """Union two record sets by id; ``fresh`` wins on conflict.

    Args:
        cached: Records already held locally.
        fresh: Newly fetched records.
        ascending: Oldest first instead of newest first (used for
            forward-chronological playback).

    Returns:
        De-duplicated records ordered by ``timestamp_ms``.
    """
    by_id: Dict[str, EventRecord] = {r.id: r for r in cached}
    for record in fresh:
        by_id[record.id] = record
    return sort_records(by_id.values(), ascending=ascending)
