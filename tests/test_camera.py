"""
FaceCue - Camera Module Tests
=============================
Synthetic NumPy frames and a mocked cv2.VideoCapture: NO real camera needed.
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from facecue_camera import FaceCueCamera
from facecue_types import CameraUnavailableError


# ─── Fixtures ─────────────────────────────────────────────────

def _make_valid_frame(
    height: int = 480,
    width: int = 640,
    brightness: int = 128,
) -> np.ndarray:
    """Create a synthetic BGR frame that passes all validation checks."""
    rng = np.random.RandomState(42)
    frame = rng.randint(
        max(20, brightness - 60),
        min(240, brightness + 60),
        size=(height, width, 3),
        dtype=np.uint8,
    )
    return frame


def _make_mock_camera(frame: np.ndarray | None, ret: bool = True, opened: bool = True):
    """Create a mock cv2.VideoCapture that returns the given frame."""
    mock_cap = MagicMock()
    mock_cap.read.return_value = (ret, frame)
    mock_cap.isOpened.return_value = opened
    mock_cap.get.return_value = 30.0
    mock_cap.set.return_value = True
    return mock_cap


# ─── Opening ──────────────────────────────────────────────────

def test_unopenable_device_raises():
    """A denied or missing camera is fatal at session start."""
    mock_cap = _make_mock_camera(None, opened=False)

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap):
        with pytest.raises(CameraUnavailableError):
            FaceCueCamera(camera_id=3)

    mock_cap.release.assert_called_once()


def test_requested_resolution_is_set():
    mock_cap = _make_mock_camera(_make_valid_frame())

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap) as ctor:
        cam = FaceCueCamera(camera_id=0, width=1280, height=720)

    assert ctor.call_count == 1
    assert mock_cap.set.call_count == 2
    cam.release()


def test_video_file_source_skips_backend():
    mock_cap = _make_mock_camera(_make_valid_frame())

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap) as ctor:
        cam = FaceCueCamera(camera_id="clip.mp4")

    ctor.assert_called_once_with("clip.mp4")
    cam.release()


# ─── Validation ───────────────────────────────────────────────

def test_valid_frame_passes_all_checks():
    frame = _make_valid_frame()
    mock_cap = _make_mock_camera(frame, ret=True)

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = FaceCueCamera(camera_id=0)
        ok, result_frame, ts = cam.read_validated_frame()

    assert ok is True
    assert result_frame is not None
    assert ts > 0
    assert np.array_equal(result_frame, frame)
    cam.release()


@pytest.mark.parametrize("frame, ret", [
    (None, True),
    (np.full((480, 640, 4), 128, dtype=np.uint8), True),   # BGRA
    (np.zeros((480, 640, 3), dtype=np.uint8), True),       # lens cap
    (np.full((480, 640, 3), 255, dtype=np.uint8), True),   # saturated
    (np.full((100, 100, 3), 128, dtype=np.uint8), True),   # undersized
    (np.full((480, 640), 128, dtype=np.uint8), True),      # grayscale
    (np.full((480, 640, 3), 0.5, dtype=np.float32), True), # float
    (np.full((480, 640, 3), 128, dtype=np.uint8), False),  # read failed
])
def test_invalid_frames_are_dropped(frame, ret):
    mock_cap = _make_mock_camera(frame, ret=ret)

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = FaceCueCamera(camera_id=0)
        ok, result_frame, ts = cam.read_validated_frame()

    assert ok is False
    assert result_frame is None
    assert ts == 0.0
    cam.release()


def test_last_read_failed_separates_read_errors_from_rejections():
    dark = np.zeros((480, 640, 3), dtype=np.uint8)
    mock_cap = _make_mock_camera(dark, ret=True)

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = FaceCueCamera(camera_id=0)
        ok, _, _ = cam.read_validated_frame()
        assert ok is False
        assert cam.last_read_failed is False

        mock_cap.read.return_value = (False, None)
        ok, _, _ = cam.read_validated_frame()
        assert ok is False
        assert cam.last_read_failed is True

    cam.release()


# ─── Health ───────────────────────────────────────────────────

def test_health_status_reports_correctly():
    """Health status should reflect actual capture history."""
    valid_frame = _make_valid_frame()
    black_frame = np.zeros((480, 640, 3), dtype=np.uint8)

    call_count = [0]
    frames = [valid_frame, black_frame, valid_frame]

    def mock_read():
        idx = min(call_count[0], len(frames) - 1)
        call_count[0] += 1
        return (True, frames[idx])

    mock_cap = MagicMock()
    mock_cap.read = mock_read
    mock_cap.isOpened.return_value = True
    mock_cap.get.return_value = 30.0
    mock_cap.set.return_value = True

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = FaceCueCamera(camera_id=0)
        for _ in range(3):
            cam.read_validated_frame()
        health = cam.get_health_status()

    for key in ("connected", "fps_actual", "frames_total", "frames_dropped",
                "drop_rate_pct", "last_valid_frame_age_ms", "resolution", "backend"):
        assert key in health

    assert health["connected"] is True
    assert health["frames_total"] == 3
    assert health["frames_dropped"] == 1
    assert health["drop_rate_pct"] == pytest.approx(100.0 / 3)
    assert isinstance(health["fps_actual"], float)
    assert health["backend"] == "Auto"
    cam.release()


def test_context_manager_releases_capture():
    mock_cap = _make_mock_camera(_make_valid_frame())

    with patch("facecue_camera.cv2.VideoCapture", return_value=mock_cap):
        with FaceCueCamera(camera_id=0) as cam:
            assert cam.is_opened()

    mock_cap.release.assert_called_once()


# ─── Run ──────────────────────────────────────────────────────

if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
