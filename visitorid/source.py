"""Contract for the external component that turns frames into descriptors."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from visitorid.recognition.comparator import as_descriptor
from visitorid.types import Detection

LOGGER = logging.getLogger("visitorid.source")


@runtime_checkable
class DescriptorSource(Protocol):
    """Anything that yields zero or more face detections for a frame.

    Model loading, detector fallback and camera handling belong to the
    implementation; the matching core only consumes the detections.
    """

    def detect(self, frame: Any) -> Sequence[Detection]:
        ...


def validated_detections(
    detections: Sequence[Detection],
    expected_length: Optional[int] = None,
) -> List[Detection]:
    """Normalize descriptors and confidences coming out of a source.

    Raises ``InvalidDescriptor`` on a malformed descriptor. Confidences
    are clipped into [0, 1].
    """
    cleaned: List[Detection] = []
    for detection in detections:
        descriptor = as_descriptor(detection.descriptor, expected_length)
        confidence = detection.confidence
        if confidence is not None:
            confidence = float(np.clip(confidence, 0.0, 1.0))
        cleaned.append(Detection(descriptor=descriptor, confidence=confidence, landmarks=detection.landmarks))
    LOGGER.debug("Validated %d detection(s)", len(cleaned))
    return cleaned


def detections_from_payload(payload: Any) -> List[Detection]:
    """Parse captures exported by a descriptor source as JSON.

    Accepts a list of bare descriptors, a list of
    ``{"descriptor": [...], "confidence": 0.9}`` objects, or a mapping with
    such a list under ``"captures"``.
    """
    if isinstance(payload, dict):
        payload = payload.get("captures", [])
    if not isinstance(payload, list):
        raise ValueError("Capture payload must be a list or a mapping with 'captures'")
    detections: List[Detection] = []
    for item in payload:
        if isinstance(item, dict):
            if "descriptor" not in item:
                raise ValueError("Capture entry is missing 'descriptor'")
            landmarks = item.get("landmarks")
            detections.append(
                Detection(
                    descriptor=item["descriptor"],
                    confidence=item.get("confidence"),
                    landmarks=None if landmarks is None else np.asarray(landmarks, dtype=np.float32),
                )
            )
        else:
            detections.append(Detection(descriptor=item))
    return detections
