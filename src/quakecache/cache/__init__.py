"""Day cache: stores, freshness policy, planning and merging."""
