"""
Cache demo: USGS Earthquake Data

Loads M2.5+ US earthquakes for the last 30 days through the cache
engine, runs the same query again to show it served from cache, then
tops off with anything newer. Set QUAKECACHE_CACHE_DIR to keep the
cache on disk between runs.
"""

from datetime import datetime, timedelta, timezone

from quakecache import (
    CacheEngine,
    CacheQuery,
    MagnitudeRange,
    RegionScope,
    UpstreamError,
    configure_logging,
)


def print_progress(state):
    if state.is_idle:
        return
    step = f"[{state.current_step}/{state.total_steps}] " if state.total_steps else ""
    print(f"  {state.operation.value:<10} {step}{state.message}")


def main():
    configure_logging("WARNING")
    engine = CacheEngine()
    engine.subscribe_progress(print_progress)

    end = datetime.now(timezone.utc).date()
    start = end - timedelta(days=30)
    query = CacheQuery(start, end, MagnitudeRange(min=2.5), RegionScope.US)

    print("=" * 60)
    print("USGS Earthquake Cache: Last 30 Days")
    print("=" * 60)
    print(f"Date range: {start} to {end}")
    print(f"Minimum magnitude: {query.magnitude.min}")
    print()

    try:
        result = engine.query(
            query,
            on_partial_result=lambda records: print(f"  ... {len(records)} events so far"),
        )
    except UpstreamError as exc:
        print(f"Error: {exc}")
        print(f"Events loaded before the failure: {len(exc.partial_records)}")
        return

    # Telemetry
    print()
    print("--- Telemetry ---")
    print(f"  Records:      {result.summary['total']}")
    print(f"  Cached days:  {len(result.plan.cached_days)}")
    print(f"  Fetched days: {len(result.plan.stale_days)}")
    print(f"  API calls:    {result.api_calls}")
    print(f"  Duration:     {result.duration_seconds:.2f}s")
    if result.store_error:
        print(f"  Cache write failed: {result.store_error}")
    print()

    df = result.data
    if df.empty:
        print("No events in range.")
        return

    # Top 10 by magnitude
    print("--- Top 10 Earthquakes by Magnitude ---")
    top = df.nlargest(10, "magnitude")[["magnitude", "place", "time", "depth"]]
    for _, row in top.iterrows():
        print(f"  M{row['magnitude']:.1f}  {row['place']}")
    print()

    # Geographic distribution
    print("--- Geographic Distribution ---")
    regions = df["place"].str.extract(r",\s*(.+)$")[0].value_counts().head(10)
    for region, count in regions.items():
        print(f"  {region}: {count} events")
    print()

    # Second run is served from the cache
    again = engine.query(query)
    print("--- Repeat Query ---")
    print(f"  From cache only: {again.from_cache_only}")
    print(f"  API calls:       {again.api_calls}")
    print()

    new = engine.top_off()
    print("--- Top-off ---")
    print(f"  New events: {new.count}")
    print()

    stats = engine.stats(RegionScope.US)
    print("--- Cache ---")
    for name, value in stats.to_dict().items():
        print(f"  {name}: {value}")
    integrity = engine.check_integrity(RegionScope.US)
    print(f"  healthy: {integrity.is_healthy}")
    for issue in integrity.issues:
        print(f"  issue: {issue}")


if __name__ == "__main__":
    main()
