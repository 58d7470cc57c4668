"""
FaceCue - Haar Cascade Frame Detector
=====================================
Owns ALL cascade classifier interaction. No other module should
call cv2.CascadeClassifier directly.

Per frame:
  1. BGR → grayscale
  2. Faces over the whole frame
  3. Eyes in the top half of each face
  4. Mouths in the bottom half of each face

Returned rectangles follow FaceObservation's coordinate rules:
eyes relative to the face, mouths relative to the lower half.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Tuple

import cv2
import numpy as np

from facecue_types import CascadeLoadError, FaceObservation, Rect

_log = logging.getLogger("FaceCueDetector")

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))

# (scaleFactor, minNeighbors)
FACE_PARAMS: Tuple[float, int] = (1.3, 5)
EYE_PARAMS: Tuple[float, int] = (1.1, 3)
MOUTH_PARAMS: Tuple[float, int] = (1.7, 11)


def resolve_cascade_path(filename: str, cascade_dir: Optional[str] = None) -> str:
    """Find a cascade file.

    Search order: the name as given (absolute or cwd-relative),
    cascade_dir (relative dirs resolved against the project root),
    then OpenCV's bundled haarcascades directory.

    Raises:
        CascadeLoadError: if the file is not found anywhere.
    """
    candidates = [filename]
    if cascade_dir:
        base = cascade_dir if os.path.isabs(cascade_dir) else os.path.join(_SCRIPT_DIR, cascade_dir)
        candidates.append(os.path.join(base, filename))
    bundled = getattr(getattr(cv2, "data", None), "haarcascades", None)
    if bundled:
        candidates.append(os.path.join(bundled, filename))

    for path in candidates:
        if os.path.isfile(path):
            return path
    raise CascadeLoadError(
        f"Cascade {filename!r} not found (searched: {', '.join(candidates)})"
    )


def load_cascade(filename: str, cascade_dir: Optional[str] = None) -> cv2.CascadeClassifier:
    """Load a Haar cascade, failing loudly if it is missing or empty."""
    path = resolve_cascade_path(filename, cascade_dir)
    classifier = cv2.CascadeClassifier(path)
    if classifier.empty():
        raise CascadeLoadError(f"Cascade {path!r} failed to load")
    _log.info("Cascade loaded: %s", os.path.basename(path))
    return classifier


class HaarFrameDetector:
    """Face / eye / mouth detection with OpenCV Haar cascades."""

    def __init__(
        self,
        face_cascade: str = "haarcascade_frontalface_default.xml",
        eye_cascade: str = "haarcascade_eye.xml",
        mouth_cascade: str = "haarcascade_mcs_mouth.xml",
        cascade_dir: Optional[str] = "data",
        face_params: Tuple[float, int] = FACE_PARAMS,
        eye_params: Tuple[float, int] = EYE_PARAMS,
        mouth_params: Tuple[float, int] = MOUTH_PARAMS,
    ) -> None:
        """Load all three cascades.

        Raises:
            CascadeLoadError: if any cascade cannot be loaded. This is
                fatal for the session.
        """
        self._face = load_cascade(face_cascade, cascade_dir)
        self._eye = load_cascade(eye_cascade, cascade_dir)
        self._mouth = load_cascade(mouth_cascade, cascade_dir)
        self.face_params = face_params
        self.eye_params = eye_params
        self.mouth_params = mouth_params

        _log.info(
            "HaarFrameDetector initialized: face=%s eye=%s mouth=%s",
            face_params, eye_params, mouth_params,
        )

    # ── Public API ────────────────────────────────────────────

    def detect(self, frame: np.ndarray) -> List[FaceObservation]:
        """Detect faces and their eyes and mouths.

        Args:
            frame: BGR uint8 image, or an already-grayscale 2-D image.

        Returns:
            FaceObservation list in cascade output order. Empty if no
            faces were found.
        """
        gray = self.to_gray(frame)
        observations = []

        for face in self._run(self._face, gray, self.face_params):
            roi = gray[face.y:face.y + face.height, face.x:face.x + face.width]
            split = face.height // 2
            eyes = self._run(self._eye, roi[:split, :], self.eye_params)
            mouths = self._run(self._mouth, roi[split:, :], self.mouth_params)
            observations.append(FaceObservation(face=face, eyes=eyes, mouths=mouths))

        return observations

    @staticmethod
    def to_gray(frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 2:
            return frame
        if frame.shape[2] == 4:
            return cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

    def release(self) -> None:
        """Drop classifier references."""
        self._face = self._eye = self._mouth = None
        _log.info("HaarFrameDetector released")

    # ── Context manager ───────────────────────────────────────

    def __enter__(self) -> "HaarFrameDetector":
        return self

    def __exit__(self, *args) -> None:
        self.release()

    # ── Private helpers ───────────────────────────────────────

    @staticmethod
    def _run(classifier, image: np.ndarray, params: Tuple[float, int]) -> List[Rect]:
        # detectMultiScale rejects zero-sized inputs
        if image.size == 0:
            return []
        scale_factor, min_neighbors = params
        found = classifier.detectMultiScale(
            image, scaleFactor=scale_factor, minNeighbors=min_neighbors
        )
        return [Rect.from_tuple(row) for row in found]
