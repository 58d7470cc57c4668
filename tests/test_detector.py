"""
FaceCue - Haar Detector Tests
=============================
Cascade loading and ROI splitting with a mocked
cv2.CascadeClassifier. No cascade XML or camera needed.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from facecue_detector import HaarFrameDetector, resolve_cascade_path
from facecue_types import CascadeLoadError, FaceObservation, Rect


NAMES = {
    "face": "face.xml",
    "eye": "eye.xml",
    "mouth": "mouth.xml",
}


# ─── Fixtures ─────────────────────────────────────────────────

@pytest.fixture
def cascade_dir(tmp_path):
    for name in NAMES.values():
        (tmp_path / name).write_text("<opencv_storage/>")
    return str(tmp_path)


@pytest.fixture
def classifiers():
    """One mock classifier per cascade, keyed by role."""
    mocks = {}
    for role in NAMES:
        clf = MagicMock(name=f"{role}_cascade")
        clf.empty.return_value = False
        clf.detectMultiScale.return_value = ()
        mocks[role] = clf
    return mocks


def _make_detector(cascade_dir, classifiers):
    by_file = {NAMES[role]: clf for role, clf in classifiers.items()}

    def fake_cascade(path):
        return by_file[os.path.basename(path)]

    with patch("facecue_detector.cv2.CascadeClassifier", side_effect=fake_cascade):
        return HaarFrameDetector(
            face_cascade=NAMES["face"],
            eye_cascade=NAMES["eye"],
            mouth_cascade=NAMES["mouth"],
            cascade_dir=cascade_dir,
        )


def _frame(height=480, width=640):
    return np.full((height, width, 3), 128, dtype=np.uint8)


# ─── Cascade loading ──────────────────────────────────────────

def test_resolve_cascade_path_prefers_cascade_dir(cascade_dir):
    path = resolve_cascade_path("eye.xml", cascade_dir)
    assert path == os.path.join(cascade_dir, "eye.xml")


def test_missing_cascade_raises(cascade_dir):
    with pytest.raises(CascadeLoadError):
        resolve_cascade_path("definitely_not_a_cascade.xml", cascade_dir)


def test_empty_classifier_raises(cascade_dir, classifiers):
    classifiers["mouth"].empty.return_value = True
    with pytest.raises(CascadeLoadError):
        _make_detector(cascade_dir, classifiers)


# ─── Detection ────────────────────────────────────────────────

def test_no_faces_returns_empty_list(cascade_dir, classifiers):
    detector = _make_detector(cascade_dir, classifiers)

    assert detector.detect(_frame()) == []
    classifiers["eye"].detectMultiScale.assert_not_called()
    classifiers["mouth"].detectMultiScale.assert_not_called()


def test_face_split_into_eye_and_mouth_windows(cascade_dir, classifiers):
    classifiers["face"].detectMultiScale.return_value = np.array([[50, 40, 100, 120]])
    classifiers["eye"].detectMultiScale.return_value = np.array([[10, 12, 20, 15], [60, 14, 20, 15]])
    classifiers["mouth"].detectMultiScale.return_value = np.array([[30, 20, 40, 18]])
    detector = _make_detector(cascade_dir, classifiers)

    faces = detector.detect(_frame())

    assert len(faces) == 1
    obs = faces[0]
    assert obs.face == Rect(50, 40, 100, 120)
    assert obs.eyes == [Rect(10, 12, 20, 15), Rect(60, 14, 20, 15)]
    assert obs.mouths == [Rect(30, 20, 40, 18)]

    # Each half of the 120 px face is searched separately
    eye_img = classifiers["eye"].detectMultiScale.call_args[0][0]
    mouth_img = classifiers["mouth"].detectMultiScale.call_args[0][0]
    assert eye_img.shape == (60, 100)
    assert mouth_img.shape == (60, 100)


def test_detector_uses_configured_scan_parameters(cascade_dir, classifiers):
    classifiers["face"].detectMultiScale.return_value = np.array([[0, 0, 80, 80]])
    detector = _make_detector(cascade_dir, classifiers)

    detector.detect(_frame())

    assert classifiers["face"].detectMultiScale.call_args[1] == {"scaleFactor": 1.3, "minNeighbors": 5}
    assert classifiers["eye"].detectMultiScale.call_args[1] == {"scaleFactor": 1.1, "minNeighbors": 3}
    assert classifiers["mouth"].detectMultiScale.call_args[1] == {"scaleFactor": 1.7, "minNeighbors": 11}


def test_multiple_faces_keep_detector_order(cascade_dir, classifiers):
    classifiers["face"].detectMultiScale.return_value = np.array(
        [[300, 10, 90, 90], [20, 30, 100, 100]]
    )
    detector = _make_detector(cascade_dir, classifiers)

    faces = detector.detect(_frame())

    assert [f.face.x for f in faces] == [300, 20]
    assert classifiers["eye"].detectMultiScale.call_count == 2


def test_grayscale_frame_accepted(cascade_dir, classifiers):
    classifiers["face"].detectMultiScale.return_value = np.array([[0, 0, 60, 60]])
    detector = _make_detector(cascade_dir, classifiers)
    gray = np.full((240, 320), 100, dtype=np.uint8)

    faces = detector.detect(gray)

    assert len(faces) == 1
    assert classifiers["face"].detectMultiScale.call_args[0][0] is gray


def test_degenerate_face_skips_empty_window(cascade_dir, classifiers):
    classifiers["face"].detectMultiScale.return_value = np.array([[10, 10, 40, 1]])
    detector = _make_detector(cascade_dir, classifiers)

    faces = detector.detect(_frame())

    assert faces[0].eyes == []
    classifiers["eye"].detectMultiScale.assert_not_called()


# ─── Coordinate helpers ───────────────────────────────────────

def test_face_observation_regions_and_frame_offsets():
    obs = FaceObservation(
        face=Rect(50, 40, 100, 121),
        eyes=[Rect(10, 12, 20, 15)],
        mouths=[Rect(30, 20, 40, 18)],
    )

    assert obs.upper_region() == Rect(0, 0, 100, 60)
    assert obs.lower_region() == Rect(0, 60, 100, 61)
    assert obs.eyes_in_frame() == [Rect(60, 52, 20, 15)]
    assert obs.mouths_in_frame() == [Rect(80, 120, 40, 18)]
    assert obs.eye_count == 1
    assert obs.mouth_open is True
