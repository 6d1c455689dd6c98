"""Bounded, quality-aware enrollment of visitor face descriptors."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from visitorid.recognition.comparator import as_descriptor
from visitorid.recognition.policy import DEFAULT_POLICY, DecisionPolicy
from visitorid.types import Descriptor, Detection, EnrollmentRecord, EnrollmentSample, RawDescriptor

LOGGER = logging.getLogger("visitorid.recognition.enrollment")


def _check_quality(quality: float) -> float:
    quality = float(quality)
    if not 0.0 <= quality <= 1.0:
        raise ValueError(f"Quality score must be within [0, 1], got {quality}")
    return quality


def add_sample(
    record: EnrollmentRecord,
    descriptor: RawDescriptor,
    quality: float,
    expected_length: Optional[int] = None,
) -> bool:
    """Add a sample to ``record`` and report whether it was kept.

    Below capacity the sample is appended. At capacity it replaces the
    lowest-quality sample only when strictly better; otherwise the record is
    left untouched and ``False`` is returned.
    """
    quality = _check_quality(quality)
    descriptor = as_descriptor(descriptor, expected_length)
    sample = EnrollmentSample(descriptor=descriptor, quality=quality)

    if not record.is_full:
        record.samples.append(sample)
        return True

    worst_idx = record.min_quality_index()
    if worst_idx is None or quality <= record.samples[worst_idx].quality:
        LOGGER.debug(
            "Identity %s: sample quality %.3f does not beat stored minimum; discarded",
            record.identity_id,
            quality,
        )
        return False

    LOGGER.debug(
        "Identity %s: replacing sample %d (quality %.3f) with quality %.3f",
        record.identity_id,
        worst_idx,
        record.samples[worst_idx].quality,
        quality,
    )
    record.samples[worst_idx] = sample
    return True


def candidates(record: EnrollmentRecord) -> List[Descriptor]:
    """All stored descriptors of a record; order carries no meaning."""
    return [sample.descriptor for sample in record.samples]


class EnrollmentRegistry:
    """Owns the enrolled population and serializes writes per identity."""

    def __init__(
        self,
        policy: DecisionPolicy = DEFAULT_POLICY,
        records: Optional[Iterable[EnrollmentRecord]] = None,
    ) -> None:
        self.policy = policy
        self._records: Dict[str, EnrollmentRecord] = {}
        self._locks: Dict[str, List] = {}
        self._guard = threading.Lock()
        for record in records or []:
            self._records[record.identity_id] = record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._records

    @contextmanager
    def _identity_lock(self, identity_id: str) -> Iterator[None]:
        """Hold the writer lock for one identity.

        Locks are reference counted and discarded once no thread uses them and
        the identity holds no record, so lookups never grow the lock table.
        """
        with self._guard:
            entry = self._locks.get(identity_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[identity_id] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0 and identity_id not in self._records:
                    self._locks.pop(identity_id, None)

    def record(self, identity_id: str) -> Optional[EnrollmentRecord]:
        """Snapshot of one identity's record, or None if never enrolled."""
        if identity_id not in self._records:
            return None
        with self._identity_lock(identity_id):
            record = self._records.get(identity_id)
            return record.copy() if record is not None else None

    def add_sample(self, identity_id: str, descriptor: RawDescriptor, quality: Optional[float] = None) -> bool:
        if quality is None:
            quality = self.policy.default_quality
        with self._identity_lock(identity_id):
            record = self._records.get(identity_id)
            if record is None:
                record = EnrollmentRecord(identity_id=identity_id, capacity=self.policy.sample_capacity)
            accepted = add_sample(record, descriptor, quality, self.policy.descriptor_length)
            # A record exists only once a capture has been accepted into it.
            if accepted and identity_id not in self._records:
                with self._guard:
                    self._records[identity_id] = record
            return accepted

    def enroll(self, identity_id: str, detections: Iterable[Detection]) -> int:
        """Feed a burst of enrollment captures; returns how many were kept."""
        accepted = 0
        for detection in detections:
            if self.add_sample(identity_id, detection.descriptor, detection.confidence):
                accepted += 1
        LOGGER.info("Enrolled %d sample(s) for identity %s", accepted, identity_id)
        return accepted

    def remove(self, identity_id: str) -> bool:
        if identity_id not in self._records:
            return False
        with self._identity_lock(identity_id):
            with self._guard:
                return self._records.pop(identity_id, None) is not None

    def population(self) -> Dict[str, EnrollmentRecord]:
        """Point-in-time copy of all records for read-only matching."""
        with self._guard:
            identity_ids = list(self._records.keys())
        snapshot: Dict[str, EnrollmentRecord] = {}
        for identity_id in identity_ids:
            record = self.record(identity_id)
            if record is not None:
                snapshot[identity_id] = record
        return snapshot
