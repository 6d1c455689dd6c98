"""Exceptions raised by the biometric matching core.

Rejected enrollment samples and non-matching probes are ordinary return
values, not errors. Only malformed input ends up here.
"""


class BiometricError(Exception):
    """Base class for biometric core failures."""


class DimensionMismatch(BiometricError, ValueError):
    """Two descriptors of different lengths were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Descriptor lengths do not match: {left} != {right}")
        self.left = left
        self.right = right


class InvalidDescriptor(BiometricError, ValueError):
    """A descriptor from the descriptor source is empty or malformed."""
