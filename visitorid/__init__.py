"""
Core package init for the visitor biometrics engine.

Makes the `visitorid` modules importable without requiring an editable install.
"""

__all__ = [
    "errors",
    "io_utils",
    "liveness",
    "recognition",
    "source",
    "types",
]
