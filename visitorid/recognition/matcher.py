"""1:1 verification and 1:N identification against enrolled visitors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from visitorid.recognition.comparator import as_descriptor, distance, to_similarity_score
from visitorid.recognition.enrollment import candidates
from visitorid.recognition.policy import DEFAULT_POLICY, DecisionPolicy
from visitorid.types import TIER_LOW, EnrollmentRecord, MatchResult, RawDescriptor

LOGGER = logging.getLogger("visitorid.recognition.matcher")

Population = Union[Mapping[str, EnrollmentRecord], Iterable[EnrollmentRecord]]


@dataclass
class _BestSample:
    similarity: float
    distance: float
    sample_idx: int
    descriptor: np.ndarray


def _ordered_records(population: Population) -> List[EnrollmentRecord]:
    # Ascending identity id so that exact ties always resolve the same way.
    records = population.values() if isinstance(population, Mapping) else population
    return sorted(records, key=lambda record: record.identity_id)


class IdentityMatcher:
    """Scores probes against enrollment records using a decision policy."""

    def __init__(self, policy: DecisionPolicy = DEFAULT_POLICY) -> None:
        self.policy = policy

    def _probe(self, probe: RawDescriptor) -> np.ndarray:
        return as_descriptor(probe, self.policy.descriptor_length)

    def _best_sample(self, probe: np.ndarray, record: EnrollmentRecord) -> Optional[_BestSample]:
        """Highest-similarity stored sample; the first one wins ties."""
        best: Optional[_BestSample] = None
        for idx, stored in enumerate(candidates(record)):
            dist = distance(probe, stored)
            similarity = to_similarity_score(dist, self.policy)
            if best is None or similarity > best.similarity:
                best = _BestSample(similarity, dist, idx, stored)
        return best

    def _no_match(self, best: Optional[_BestSample]) -> MatchResult:
        if best is None:
            return MatchResult(identity_id=None, similarity=0.0, tier=TIER_LOW)
        return MatchResult(
            identity_id=None,
            similarity=best.similarity,
            tier=TIER_LOW,
            distance=best.distance,
        )

    def _accepted(self, identity_id: str, best: _BestSample) -> MatchResult:
        return MatchResult(
            identity_id=identity_id,
            similarity=best.similarity,
            tier=self.policy.tier_for(best.similarity),
            distance=best.distance,
            sample_idx=best.sample_idx,
            descriptor=best.descriptor,
        )

    def verify(self, probe: RawDescriptor, record: EnrollmentRecord) -> MatchResult:
        """1:1 check of a probe against one claimed identity."""
        probe_vec = self._probe(probe)
        best = self._best_sample(probe_vec, record)
        if best is None or not self.policy.accepts(best.similarity):
            LOGGER.debug(
                "Verify %s rejected (best similarity %s)",
                record.identity_id,
                "n/a" if best is None else f"{best.similarity:.3f}",
            )
            return self._no_match(best)
        return self._accepted(record.identity_id, best)

    def _scores(self, probe_vec: np.ndarray, population: Population) -> List[Tuple[str, _BestSample]]:
        scored: List[Tuple[str, _BestSample]] = []
        for record in _ordered_records(population):
            if record.is_empty:
                continue
            best = self._best_sample(probe_vec, record)
            if best is not None:
                scored.append((record.identity_id, best))
        return scored

    def identify(self, probe: RawDescriptor, population: Population) -> MatchResult:
        """1:N search for the enrolled identity that best matches a probe.

        Records are evaluated in ascending identity id order and a later
        identity only takes the lead with a strictly higher similarity, so an
        exact tie goes to the smallest id.
        """
        probe_vec = self._probe(probe)
        scored = self._scores(probe_vec, population)
        if not scored:
            LOGGER.debug("Identify: no enrolled candidates")
            return self._no_match(None)

        leader_id, leader = scored[0]
        runner_up = float("-inf")
        for identity_id, best in scored[1:]:
            if best.similarity > leader.similarity:
                runner_up = leader.similarity
                leader_id, leader = identity_id, best
            elif best.similarity > runner_up:
                runner_up = best.similarity

        if not self.policy.accepts(leader.similarity):
            LOGGER.debug("Identify: best %s at %.3f below acceptance", leader_id, leader.similarity)
            return self._no_match(leader)
        if self.policy.min_margin > 0 and runner_up > float("-inf"):
            if (leader.similarity - runner_up) < self.policy.min_margin:
                LOGGER.debug(
                    "Identify: %s at %.3f not separated from runner-up %.3f",
                    leader_id,
                    leader.similarity,
                    runner_up,
                )
                return self._no_match(leader)
        return self._accepted(leader_id, leader)

    def _pick_best(self, results: Iterable[MatchResult]) -> MatchResult:
        # Accepted results outrank rejected ones; among equals the earliest wins.
        best_result: Optional[MatchResult] = None
        for result in results:
            if best_result is None:
                best_result = result
            elif (result.matched, result.similarity) > (best_result.matched, best_result.similarity):
                best_result = result
        return best_result if best_result is not None else self._no_match(None)

    def verify_any(self, probes: Sequence[RawDescriptor], record: EnrollmentRecord) -> MatchResult:
        """Verify several captures of the same face; the best one decides."""
        return self._pick_best(self.verify(probe, record) for probe in probes)

    def identify_any(self, probes: Sequence[RawDescriptor], population: Population) -> MatchResult:
        """Identify using several captures of the same face; the best one decides."""
        records = _ordered_records(population)
        return self._pick_best(self.identify(probe, records) for probe in probes)

    def rank(self, probe: RawDescriptor, population: Population, k: int = 3) -> List[Tuple[str, float]]:
        """Top-k identities by best similarity without applying thresholds."""
        probe_vec = self._probe(probe)
        scored = [(identity_id, best.similarity) for identity_id, best in self._scores(probe_vec, population)]
        # Stable sort keeps ascending id order among equal similarities.
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:k]
