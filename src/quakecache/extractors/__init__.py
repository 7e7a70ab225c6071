"""Upstream catalog clients."""
