"""Fetch pipeline: chunking, orchestration, top-off and progress."""
