import json
from pathlib import Path

import numpy as np
import pytest

pytest.importorskip("pyarrow")

from visitorid.recognition.enrollment import add_sample
from visitorid.recognition.store import load_enrollments, save_enrollments
from visitorid.types import EnrollmentRecord


def _record(identity_id: str, qualities) -> EnrollmentRecord:
    record = EnrollmentRecord(identity_id=identity_id, capacity=len(qualities))
    for idx, quality in enumerate(qualities):
        add_sample(record, np.arange(4, dtype=np.float32) + idx, quality)
    return record


def test_store_preserves_samples_and_writes_metadata(tmp_path: Path):
    records = {"V-2": _record("V-2", [0.9]), "V-1": _record("V-1", [0.7, 0.8, 0.95])}
    artifacts = save_enrollments(records, tmp_path)

    meta = json.loads(artifacts.meta_json_path.read_text(encoding="utf-8"))
    assert meta["identities"] == ["V-1", "V-2"]
    assert meta["counts"] == {"V-1": 3, "V-2": 1}
    assert meta["num_samples"] == 4

    loaded = load_enrollments(artifacts.parquet_path, capacity=5, expected_length=4)
    assert sorted(loaded) == ["V-1", "V-2"]
    assert loaded["V-1"].qualities == pytest.approx([0.7, 0.8, 0.95])
    assert loaded["V-1"].capacity == 5
    np.testing.assert_allclose(loaded["V-1"].samples[2].descriptor, np.arange(4) + 2)


def test_load_trims_to_capacity_keeping_best(tmp_path: Path):
    artifacts = save_enrollments([_record("V-1", [0.2, 0.9, 0.5, 0.8])], tmp_path)
    loaded = load_enrollments(artifacts.parquet_path, capacity=2)
    assert loaded["V-1"].qualities == pytest.approx([0.9, 0.8])


def test_missing_store_loads_empty(tmp_path: Path):
    assert load_enrollments(tmp_path / "enrollments.parquet") == {}
