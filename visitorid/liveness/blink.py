"""Eye-aspect-ratio blink detection on 68-point face landmarks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

LOGGER = logging.getLogger("visitorid.liveness.blink")

LEFT_EYE = slice(36, 42)
RIGHT_EYE = slice(42, 48)
# Returned when the landmark set does not cover both eyes (eyes assumed open)
OPEN_EYE_EAR = 0.3


def _eye_aspect_ratio(eye: np.ndarray) -> float:
    vertical_1 = np.linalg.norm(eye[1] - eye[5])
    vertical_2 = np.linalg.norm(eye[2] - eye[4])
    horizontal = np.linalg.norm(eye[0] - eye[3])
    if horizontal == 0:
        return OPEN_EYE_EAR
    return float((vertical_1 + vertical_2) / (2.0 * horizontal))


def eye_aspect_ratio(landmarks: Optional[np.ndarray]) -> float:
    """Mean EAR of both eyes."""
    if landmarks is None:
        return OPEN_EYE_EAR
    points = np.asarray(landmarks, dtype=np.float64).reshape(-1, 2)
    left = points[LEFT_EYE]
    right = points[RIGHT_EYE]
    if len(left) < 6 or len(right) < 6:
        return OPEN_EYE_EAR
    return (_eye_aspect_ratio(left) + _eye_aspect_ratio(right)) / 2.0


@dataclass
class BlinkDetector:
    """Counts open -> closed eye transitions across consecutive frames."""

    open_threshold: float = 0.2
    closed_threshold: float = 0.18
    required_blinks: int = 1
    last_ear: float = 0.0
    blink_count: int = 0

    def update(self, landmarks: Optional[np.ndarray]) -> bool:
        """Feed one frame; returns True once enough blinks were seen."""
        ear = eye_aspect_ratio(landmarks)
        if self.last_ear > self.open_threshold and ear < self.closed_threshold:
            self.blink_count += 1
            LOGGER.debug("Blink %d detected (EAR %.3f -> %.3f)", self.blink_count, self.last_ear, ear)
        self.last_ear = ear
        return self.passed

    @property
    def passed(self) -> bool:
        return self.blink_count >= self.required_blinks

    def reset(self) -> None:
        self.last_ear = 0.0
        self.blink_count = 0


def blink_in_sequence(frames: Iterable[Optional[np.ndarray]], detector: Optional[BlinkDetector] = None) -> bool:
    """Feed per-frame landmarks in capture order; True once a blink is seen."""
    detector = detector or BlinkDetector()
    for landmarks in frames:
        if detector.update(landmarks):
            return True
    return False
