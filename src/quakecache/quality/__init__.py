"""Data quality rules and the cache integrity check."""
