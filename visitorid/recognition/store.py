"""Enrollment store save/load utilities."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd

from visitorid.io_utils import ensure_dir
from visitorid.recognition.comparator import as_descriptor
from visitorid.recognition.policy import DEFAULT_POLICY
from visitorid.types import EnrollmentRecord, EnrollmentSample

LOGGER = logging.getLogger("visitorid.recognition.store")

STORE_COLUMNS = ["identity_id", "sample_idx", "quality", "descriptor"]


@dataclass
class StoreArtifacts:
    parquet_path: Path
    meta_json_path: Path


def save_enrollments(
    records: Union[Mapping[str, EnrollmentRecord], Iterable[EnrollmentRecord]],
    output_dir: Path,
) -> StoreArtifacts:
    """Write every stored sample as one parquet row plus a metadata summary."""
    ensure_dir(output_dir)
    if isinstance(records, Mapping):
        records = records.values()

    rows: List[Dict] = []
    counts: Dict[str, int] = {}
    for record in sorted(records, key=lambda r: r.identity_id):
        counts[record.identity_id] = len(record)
        for idx, sample in enumerate(record.samples):
            rows.append(
                {
                    "identity_id": record.identity_id,
                    "sample_idx": idx,
                    "quality": float(sample.quality),
                    "descriptor": np.asarray(sample.descriptor, dtype=np.float32).tolist(),
                }
            )

    df = pd.DataFrame(rows, columns=STORE_COLUMNS)
    parquet_path = output_dir / "enrollments.parquet"
    meta_json_path = output_dir / "enrollment_meta.json"
    df.to_parquet(parquet_path, index=False)

    metadata = {
        "identities": sorted(counts.keys()),
        "counts": counts,
        "num_identities": len(counts),
        "num_samples": len(rows),
    }
    with meta_json_path.open("w", encoding="utf-8") as fh:
        json.dump(metadata, fh, indent=2)

    LOGGER.info("Enrollment store written: %d identities, %d samples", len(counts), len(rows))
    return StoreArtifacts(parquet_path, meta_json_path)


def load_enrollments(
    parquet_path: Path,
    capacity: int = DEFAULT_POLICY.sample_capacity,
    expected_length: Optional[int] = None,
) -> Dict[str, EnrollmentRecord]:
    """Rebuild enrollment records from a parquet store."""
    if not parquet_path.exists():
        LOGGER.info("No enrollment store at %s; starting empty", parquet_path)
        return {}
    df = pd.read_parquet(parquet_path)
    records: Dict[str, EnrollmentRecord] = {}
    for identity_id, group in df.sort_values(["identity_id", "sample_idx"]).groupby("identity_id", sort=True):
        identity_id = str(identity_id)
        record = EnrollmentRecord(identity_id=identity_id, capacity=capacity)
        for _, row in group.iterrows():
            descriptor = as_descriptor(_normalize_descriptor(row["descriptor"]), expected_length)
            record.samples.append(EnrollmentSample(descriptor=descriptor, quality=float(row["quality"])))
        if len(record) > capacity:
            # Keep the best samples when the store was written with a larger capacity.
            LOGGER.warning(
                "Identity %s has %d stored samples; keeping best %d",
                identity_id,
                len(record),
                capacity,
            )
            order = sorted(range(len(record)), key=lambda i: record.samples[i].quality, reverse=True)
            keep = sorted(order[:capacity])
            record.samples = [record.samples[i] for i in keep]
        records[identity_id] = record
    LOGGER.info("Loaded enrollment store %s: %d identities", parquet_path, len(records))
    return records


def _normalize_descriptor(raw) -> np.ndarray:
    """Convert a parquet-loaded descriptor cell into a 1D float32 vector."""
    if isinstance(raw, np.ndarray):
        if raw.dtype == object or raw.ndim > 1:
            parts = [np.asarray(part, dtype=np.float32).ravel() for part in raw]
            arr = np.concatenate(parts) if parts else np.empty((0,), dtype=np.float32)
        else:
            arr = raw.astype(np.float32)
    else:
        arr = np.asarray(raw, dtype=np.float32)
    return arr.reshape(-1)
