"""
Freshness policy for cached days.

Historical days (more than ``historical_days`` before today, UTC) are
cached permanently: the catalog does not rewrite old history. Recent
days are revised and back-filled for about a day, so their entries
expire ``recent_max_age_hours`` after they were fetched.
"""

from datetime import date, timedelta
from typing import Optional

from ..config import EngineConfig
from ..models import DayCacheEntry, utc_day

HISTORICAL_DAYS = 28
RECENT_MAX_AGE_HOURS = 24


def historical_threshold(now_ms: int, historical_days: int = HISTORICAL_DAYS) -> date:
    """Dates strictly before this one are historical."""
    return utc_day(now_ms) - timedelta(days=historical_days)


def is_historical(day: date, now_ms: int, historical_days: int = HISTORICAL_DAYS) -> bool:
    return day < historical_threshold(now_ms, historical_days)


def is_stale(
    entry: Optional[DayCacheEntry],
    now_ms: int,
    config: Optional[EngineConfig] = None,
) -> bool:
    """Decide whether a cached day must be re-fetched.

    Args:
        entry: Cached day, or None when the day was never fetched.
        now_ms: Current time in epoch ms.
        config: Supplies the thresholds; module defaults otherwise.
    """
    if entry is None:
        return True

    historical_days = config.historical_days if config else HISTORICAL_DAYS
    max_age_ms = (
        config.recent_max_age_ms if config else RECENT_MAX_AGE_HOURS * 60 * 60 * 1000
    )

    if is_historical(entry.key.date, now_ms, historical_days):
        return False
    return now_ms - entry.fetched_at_ms > max_age_ms
