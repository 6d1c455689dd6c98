"""Descriptor comparison, enrollment and identity matching."""
