#!/usr/bin/env python3
"""CLI for matching probe descriptors against the enrollment store."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from visitorid.errors import BiometricError
from visitorid.io_utils import dump_json, load_json, setup_logging
from visitorid.liveness.blink import blink_in_sequence
from visitorid.recognition.matcher import IdentityMatcher
from visitorid.recognition.policy import load_policy
from visitorid.recognition.store import load_enrollments
from visitorid.source import detections_from_payload, validated_detections
from visitorid.types import TIER_LOW, EnrollmentRecord, MatchResult


LOGGER = logging.getLogger("scripts.identify_visitor")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Identify or verify a visitor from probe descriptors")
    parser.add_argument("probes", type=Path, help="JSON file with one or more probe descriptors")
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
        "--claimed-id",
        type=str,
        default=None,
        help="Verify against this visitor (1:1) instead of searching everyone",
    )
    parser.add_argument(
        "--accept-similarity",
        type=float,
        default=None,
        help="Override the minimum similarity for accepting a match",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=0,
        help="Log the k best-scoring visitors for the first probe",
    )
    parser.add_argument(
        "--require-blink",
        action="store_true",
        help="Only match when the captures' landmarks show an eye blink",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Optional path for the match result JSON (printed to stdout otherwise)",
    )
    return parser.parse_args(argv)


def run_match(args: argparse.Namespace) -> MatchResult:
    policy = load_policy(args.policy_config).with_overrides(accept_similarity=args.accept_similarity)
    records = load_enrollments(
        args.store_dir / "enrollments.parquet",
        capacity=policy.sample_capacity,
        expected_length=policy.descriptor_length,
    )
    detections = validated_detections(
        detections_from_payload(load_json(args.probes)),
        expected_length=policy.descriptor_length,
    )
    probes = [detection.descriptor for detection in detections]
    matcher = IdentityMatcher(policy)

    if args.require_blink and not blink_in_sequence(d.landmarks for d in detections):
        LOGGER.warning("No blink found across %d capture(s); refusing to match", len(detections))
        return MatchResult(identity_id=None, similarity=0.0, tier=TIER_LOW)

    if args.top_k > 0 and probes:
        for identity_id, similarity in matcher.rank(probes[0], records, k=args.top_k):
            LOGGER.info("Candidate %s similarity=%.3f", identity_id, similarity)

    if args.claimed_id is not None:
        record = records.get(args.claimed_id)
        if record is None:
            LOGGER.warning("Claimed visitor %s has no enrollment", args.claimed_id)
            record = EnrollmentRecord(identity_id=args.claimed_id, capacity=policy.sample_capacity)
        return matcher.verify_any(probes, record)
    return matcher.identify_any(probes, records)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging()

    try:
        result = run_match(args)
    except (BiometricError, ValueError) as exc:
        LOGGER.error("Matching failed: %s", exc)
        raise SystemExit(1) from exc

    LOGGER.info(
        "Result: identity=%s similarity=%.3f tier=%s",
        result.identity_id,
        result.similarity,
        result.tier,
    )
    if args.output is not None:
        dump_json(args.output, result.to_dict())
    else:
        print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
