"""Common dataclasses and type aliases used across the visitorid package."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

# A descriptor is a 1-D float32 array; raw inputs may be any float sequence.
Descriptor = np.ndarray
RawDescriptor = Union[Sequence[float], np.ndarray]

TIER_HIGH = "high"
TIER_MEDIUM = "medium"
TIER_LOW = "low"

# Samples kept per visitor unless the policy overrides it
DEFAULT_SAMPLE_CAPACITY = 5


@dataclass
class Detection:
    """One detected face as produced by a descriptor source."""

    descriptor: RawDescriptor
    confidence: Optional[float] = None
    # 68-point landmarks as an (N, 2) array of x, y pixel coordinates
    landmarks: Optional[np.ndarray] = None


@dataclass
class EnrollmentSample:
    """A stored descriptor with the capture quality it was enrolled at."""

    descriptor: Descriptor
    quality: float


@dataclass
class EnrollmentRecord:
    """Bounded set of quality-scored descriptors belonging to one visitor."""

    identity_id: str
    capacity: int = DEFAULT_SAMPLE_CAPACITY
    samples: List[EnrollmentSample] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def is_empty(self) -> bool:
        return not self.samples

    @property
    def is_full(self) -> bool:
        return len(self.samples) >= self.capacity

    @property
    def qualities(self) -> List[float]:
        return [sample.quality for sample in self.samples]

    def min_quality_index(self) -> Optional[int]:
        """Index of the lowest-quality sample (first one on ties)."""
        if not self.samples:
            return None
        qualities = self.qualities
        return qualities.index(min(qualities))

    def copy(self) -> "EnrollmentRecord":
        # Descriptors are read-only arrays, so sharing them is safe.
        return EnrollmentRecord(
            identity_id=self.identity_id,
            capacity=self.capacity,
            samples=list(self.samples),
        )


@dataclass
class MatchResult:
    """Outcome of a 1:1 verification or 1:N identification."""

    identity_id: Optional[str]
    similarity: float
    tier: str
    distance: Optional[float] = None
    sample_idx: Optional[int] = None
    descriptor: Optional[Descriptor] = None

    @property
    def matched(self) -> bool:
        return self.identity_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "identity_id": self.identity_id,
            "similarity": self.similarity,
            "tier": self.tier,
            "distance": self.distance,
            "sample_idx": self.sample_idx,
        }
