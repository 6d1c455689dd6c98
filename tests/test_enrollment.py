from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from visitorid.errors import InvalidDescriptor
from visitorid.recognition.enrollment import EnrollmentRegistry, add_sample, candidates
from visitorid.recognition.policy import DecisionPolicy
from visitorid.types import Detection, EnrollmentRecord


def _vec(seed: float, length: int = 4) -> np.ndarray:
    return np.full(length, seed, dtype=np.float32)


def _full_record(qualities):
    record = EnrollmentRecord(identity_id="V-001", capacity=len(qualities))
    for idx, quality in enumerate(qualities):
        assert add_sample(record, _vec(idx), quality)
    return record


def test_add_below_capacity_appends():
    record = EnrollmentRecord(identity_id="V-001", capacity=5)
    for count in range(1, 6):
        assert add_sample(record, _vec(count), 0.5)
        assert len(record) == count


def test_higher_quality_replaces_minimum_at_capacity():
    record = _full_record([0.8, 0.4, 0.9, 0.6, 0.7])
    assert add_sample(record, _vec(99), 0.95)
    assert len(record) == 5
    assert record.qualities == [0.8, 0.95, 0.9, 0.6, 0.7]
    assert float(record.samples[1].descriptor[0]) == 99.0


@pytest.mark.parametrize("quality", [0.4, 0.1])
def test_lower_or_equal_quality_is_discarded_at_capacity(quality):
    record = _full_record([0.8, 0.4, 0.9, 0.6, 0.7])
    before = [s.descriptor.copy() for s in record.samples]
    assert not add_sample(record, _vec(99), quality)
    assert record.qualities == [0.8, 0.4, 0.9, 0.6, 0.7]
    for old, new in zip(before, candidates(record)):
        np.testing.assert_array_equal(old, new)


def test_minimum_ties_evict_first_lowest():
    record = _full_record([0.5, 0.3, 0.3])
    assert add_sample(record, _vec(7), 0.6)
    assert record.qualities == [0.5, 0.6, 0.3]


def test_add_sample_validates_inputs():
    record = EnrollmentRecord(identity_id="V-001")
    with pytest.raises(ValueError):
        add_sample(record, _vec(1), 1.2)
    with pytest.raises(InvalidDescriptor):
        add_sample(record, _vec(1, length=3), 0.9, expected_length=4)
    with pytest.raises(InvalidDescriptor):
        add_sample(record, [], 0.9)
    assert record.is_empty


def test_candidates_returns_all_descriptors():
    record = _full_record([0.9, 0.8])
    stored = candidates(record)
    assert len(stored) == 2
    assert candidates(EnrollmentRecord(identity_id="empty")) == []


def test_registry_enroll_uses_default_quality_for_missing_confidence():
    policy = DecisionPolicy(descriptor_length=4, sample_capacity=3)
    registry = EnrollmentRegistry(policy)
    detections = [Detection(descriptor=_vec(i)) for i in range(3)]
    detections.append(Detection(descriptor=_vec(5), confidence=0.95))
    detections.append(Detection(descriptor=_vec(6), confidence=0.2))

    assert registry.enroll("V-7", detections) == 4
    record = registry.record("V-7")
    assert record is not None
    assert len(record) == 3
    assert sorted(record.qualities) == [0.9, 0.9, 0.95]


def test_registry_rejects_wrong_length_descriptor():
    registry = EnrollmentRegistry(DecisionPolicy(descriptor_length=4))
    with pytest.raises(InvalidDescriptor):
        registry.add_sample("V-1", _vec(1, length=5), 0.9)
    assert "V-1" not in registry
    assert registry.record("V-1") is None


def test_registry_population_is_a_snapshot():
    registry = EnrollmentRegistry(DecisionPolicy(descriptor_length=4))
    registry.add_sample("V-1", _vec(1), 0.9)
    snapshot = registry.population()
    registry.add_sample("V-1", _vec(2), 0.8)
    registry.add_sample("V-2", _vec(3), 0.8)

    assert list(snapshot) == ["V-1"]
    assert len(snapshot["V-1"]) == 1
    assert len(registry.population()["V-1"]) == 2
    assert registry.remove("V-2")
    assert not registry.remove("V-2")
    assert len(registry) == 1


def test_concurrent_adds_for_one_identity_keep_best_samples():
    policy = DecisionPolicy(descriptor_length=4, sample_capacity=5)
    registry = EnrollmentRegistry(policy)
    qualities = [round(0.01 * i, 2) for i in range(1, 61)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda q: registry.add_sample("V-1", _vec(q), q), qualities))

    record = registry.record("V-1")
    assert record is not None
    assert sorted(record.qualities) == qualities[-5:]


def test_lock_table_stays_bounded():
    registry = EnrollmentRegistry(DecisionPolicy(descriptor_length=4))
    for idx in range(1000):
        assert registry.record(f"nobody-{idx}") is None
    assert not registry.remove("nobody-0")
    with pytest.raises(InvalidDescriptor):
        registry.add_sample("bad", _vec(1, length=3), 0.9)
    assert registry._locks == {}

    registry.add_sample("V-1", _vec(1), 0.9)
    assert set(registry._locks) == {"V-1"}
    assert registry.remove("V-1")
    assert registry._locks == {}
    assert len(registry) == 0
