"""Decision thresholds shared by the comparator, aggregator and matcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from visitorid.io_utils import load_yaml
from visitorid.types import DEFAULT_SAMPLE_CAPACITY, TIER_HIGH, TIER_LOW, TIER_MEDIUM

LOGGER = logging.getLogger("visitorid.recognition.policy")

# Option names used by deployment config files of the visitor application.
_CONFIG_ALIASES = {
    "sampleCapacity": "sample_capacity",
    "lowThreshold": "low_threshold",
    "highThreshold": "high_threshold",
    "midScale": "mid_scale",
    "acceptSimilarity": "accept_similarity",
    "tierHighCutoff": "tier_high_cutoff",
    "tierMediumCutoff": "tier_medium_cutoff",
    "descriptorLength": "descriptor_length",
    "minMargin": "min_margin",
    "defaultQuality": "default_quality",
}


@dataclass(frozen=True)
class DecisionPolicy:
    # Distance -> similarity curve
    low_threshold: float = 0.35
    high_threshold: float = 0.8
    # Empirical scale, deliberately not high_threshold - low_threshold
    mid_scale: float = 0.6
    accept_similarity: float = 0.5
    tier_high_cutoff: float = 0.75
    tier_medium_cutoff: float = 0.5
    sample_capacity: int = DEFAULT_SAMPLE_CAPACITY
    descriptor_length: Optional[int] = 128
    # Required lead of the best identity over the runner-up; 0 disables
    min_margin: float = 0.0
    # Stored quality when the detector reports no confidence
    default_quality: float = 0.9

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.low_threshold < 0 or self.high_threshold < 0:
            raise ValueError("Distance thresholds must be non-negative")
        if self.low_threshold > self.high_threshold:
            raise ValueError(
                f"low_threshold ({self.low_threshold}) exceeds high_threshold ({self.high_threshold})"
            )
        if self.mid_scale <= 0:
            raise ValueError("mid_scale must be positive")
        for name in ("accept_similarity", "tier_high_cutoff", "tier_medium_cutoff", "default_quality"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.tier_medium_cutoff > self.tier_high_cutoff:
            raise ValueError("tier_medium_cutoff must not exceed tier_high_cutoff")
        if self.min_margin < 0:
            raise ValueError("min_margin must be non-negative")
        if self.sample_capacity < 1:
            raise ValueError("sample_capacity must be at least 1")
        if self.descriptor_length is not None and self.descriptor_length < 1:
            raise ValueError("descriptor_length must be positive when set")

    def tier_for(self, similarity: float) -> str:
        if similarity >= self.tier_high_cutoff:
            return TIER_HIGH
        if similarity >= self.tier_medium_cutoff:
            return TIER_MEDIUM
        return TIER_LOW

    def accepts(self, similarity: float) -> bool:
        return similarity >= self.accept_similarity

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "DecisionPolicy":
        """Build a policy from camelCase or snake_case option names."""
        if not mapping:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = _CONFIG_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown policy option: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> "DecisionPolicy":
        """Return a copy with the non-None overrides applied."""
        applied = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **applied) if applied else self


DEFAULT_POLICY = DecisionPolicy()


def load_policy(path: Optional[Path]) -> DecisionPolicy:
    """Load a policy from YAML; a missing path yields the defaults."""
    if path is None or not path.exists():
        if path is not None:
            LOGGER.warning("Policy config %s not found; using defaults", path)
        return DEFAULT_POLICY
    data = load_yaml(path)
    # Allow the options either at top level or under a `policy:` key.
    section = data.get("policy", data)
    policy = DecisionPolicy.from_mapping(section)
    LOGGER.info(
        "Loaded policy %s: accept=%.2f low=%.2f high=%.2f capacity=%d",
        path,
        policy.accept_similarity,
        policy.low_threshold,
        policy.high_threshold,
        policy.sample_capacity,
    )
    return policy
