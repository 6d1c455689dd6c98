"""Pytest root configuration; keeps `visitorid` and `scripts` importable from a checkout."""
