"""Euclidean descriptor distance and the distance-to-similarity curve."""

from __future__ import annotations

from typing import Optional

import numpy as np

from visitorid.errors import DimensionMismatch, InvalidDescriptor
from visitorid.recognition.policy import DEFAULT_POLICY, DecisionPolicy
from visitorid.types import Descriptor, RawDescriptor


def as_descriptor(values: RawDescriptor, expected_length: Optional[int] = None) -> Descriptor:
    """Validate raw descriptor values and return a read-only float32 vector."""
    try:
        arr = np.array(values, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise InvalidDescriptor(f"Descriptor is not numeric: {exc}") from exc
    if arr.ndim != 1:
        raise InvalidDescriptor(f"Descriptor must be one-dimensional, got shape {arr.shape}")
    if arr.size == 0:
        raise InvalidDescriptor("Descriptor is empty")
    if expected_length is not None and arr.size != expected_length:
        raise InvalidDescriptor(
            f"Descriptor length {arr.size} does not match expected length {expected_length}"
        )
    if not np.all(np.isfinite(arr)):
        raise InvalidDescriptor("Descriptor contains NaN or infinite values")
    arr.setflags(write=False)
    return arr


def distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean (L2) distance between two descriptors of equal length."""
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape:
        raise DimensionMismatch(a.size, b.size)
    return float(np.sqrt(np.sum((a - b) ** 2)))


def to_similarity_score(dist: float, policy: DecisionPolicy = DEFAULT_POLICY) -> float:
    """Map a distance onto [0, 1].

    Distances at or below ``low_threshold`` are a certain match (1.0), at or
    above ``high_threshold`` a certain non-match (0.0). In between the score is
    ``1 - dist / mid_scale`` clipped at zero. This is not a linear ramp between
    the two thresholds; stored acceptance thresholds depend on this exact curve.
    """
    if dist <= policy.low_threshold:
        return 1.0
    if dist >= policy.high_threshold:
        return 0.0
    return max(0.0, 1.0 - dist / policy.mid_scale)
