#!/usr/bin/env python3
"""CLI for adding face captures to a visitor's enrollment record."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from visitorid.errors import BiometricError
from visitorid.io_utils import load_json, setup_logging
from visitorid.recognition.enrollment import EnrollmentRegistry
from visitorid.recognition.policy import load_policy
from visitorid.recognition.store import load_enrollments, save_enrollments
from visitorid.source import detections_from_payload, validated_detections


LOGGER = logging.getLogger("scripts.enroll_visitor")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enroll face descriptors for a visitor")
    parser.add_argument("visitor_id", type=str, help="Visitor identifier")
    parser.add_argument("captures", type=Path, help="JSON file of captured descriptors")
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=Path("data/enrollments"),
        help="Directory holding enrollments.parquet",
    )
    parser.add_argument(
        "--policy-config",
        type=Path,
        default=Path("configs/policy.yaml"),
        help="Decision policy YAML",
    )
    parser.add_argument(
        "--sample-capacity",
        type=int,
        default=None,
        help="Override the maximum number of stored samples per visitor",
    )
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Discard the visitor's existing samples before enrolling",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging()

    policy = load_policy(args.policy_config).with_overrides(sample_capacity=args.sample_capacity)
    parquet_path = args.store_dir / "enrollments.parquet"
    records = load_enrollments(
        parquet_path,
        capacity=policy.sample_capacity,
        expected_length=policy.descriptor_length,
    )
    registry = EnrollmentRegistry(policy, records.values())
    if args.replace and registry.remove(args.visitor_id):
        LOGGER.info("Cleared existing samples for %s", args.visitor_id)

    try:
        detections = validated_detections(
            detections_from_payload(load_json(args.captures)),
            expected_length=policy.descriptor_length,
        )
        accepted = registry.enroll(args.visitor_id, detections)
    except (BiometricError, ValueError) as exc:
        LOGGER.error("Enrollment failed for %s: %s", args.visitor_id, exc)
        raise SystemExit(1) from exc

    record = registry.record(args.visitor_id)
    stored = 0 if record is None else len(record)
    LOGGER.info(
        "Visitor %s: %d/%d captures accepted, %d sample(s) stored",
        args.visitor_id,
        accepted,
        len(detections),
        stored,
    )
    artifacts = save_enrollments(registry.population(), args.store_dir)
    LOGGER.info("Enrollment store: parquet=%s meta=%s", artifacts.parquet_path, artifacts.meta_json_path)


if __name__ == "__main__":
    main()
