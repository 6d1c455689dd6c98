"""Liveness checks run before matching."""
