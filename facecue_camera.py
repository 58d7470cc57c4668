"""
FaceCue - Camera Input Module
=============================
Owns ALL camera interaction. No other file should touch
cv2.VideoCapture directly.

Features:
  - Fails fast when the device cannot be opened
  - Frame validation (shape, dtype, channel count, brightness)
  - Health monitoring (FPS, drop rate, connection status)
  - Proper resource cleanup
"""

from __future__ import annotations

import time
import logging
from collections import deque
from typing import Optional, Union

import cv2
import numpy as np

from facecue_types import CameraUnavailableError


# ─── Module Logger ─────────────────────────────────────────────
_log = logging.getLogger("FaceCueCamera")


class FaceCueCamera:
    """Validated camera capture for FaceCue.

    Wraps cv2.VideoCapture with:
      - Optional resolution request
      - Per-frame validation (shape, dtype, brightness, channels)
      - Monotonic millisecond timestamps
      - Health status reporting (FPS, drops, age)
    """

    # ── Validation constants ──────────────────────────────────
    MIN_HEIGHT: int = 120
    MIN_WIDTH: int = 160
    EXPECTED_CHANNELS: int = 3
    EXPECTED_DTYPE = np.uint8
    MIN_MEAN_BRIGHTNESS: float = 5.0    # lens cap / hw failure
    MAX_MEAN_BRIGHTNESS: float = 250.0  # sensor saturation
    FPS_WINDOW: int = 30                # frames used for rolling FPS

    def __init__(
        self,
        camera_id: Union[int, str] = 0,
        backend: int = cv2.CAP_ANY,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        """Open the capture device.

        Args:
            camera_id: System camera index, or a video file path.
            backend: OpenCV capture backend (ignored for file sources).
            width: Requested frame width, if any.
            height: Requested frame height, if any.

        Raises:
            CameraUnavailableError: if the device is denied or missing.
        """
        self._camera_id = camera_id
        self._backend = backend
        self._backend_name: str = self._resolve_backend_name(backend)

        if isinstance(camera_id, str):
            self._cap: cv2.VideoCapture = cv2.VideoCapture(camera_id)
        else:
            self._cap = cv2.VideoCapture(camera_id, backend)

        if not self._cap.isOpened():
            self._cap.release()
            raise CameraUnavailableError(f"Could not open camera source {camera_id!r}")

        if width:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        self._resolution: tuple[int, int] = (
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
        self._fps_capability: float = self._cap.get(cv2.CAP_PROP_FPS)

        # Health counters
        self._frames_total: int = 0
        self._frames_dropped: int = 0
        self._last_valid_ms: float = 0.0
        self._last_read_failed: bool = False

        # Rolling FPS tracker (timestamps of last N valid frames, ms)
        self._frame_times: deque[float] = deque(maxlen=self.FPS_WINDOW)

        _log.info(
            "FaceCueCamera initialized: source=%s backend=%s resolution=%s fps_cap=%.1f",
            camera_id,
            self._backend_name,
            self._resolution,
            self._fps_capability,
        )

    # ── Public API ────────────────────────────────────────────

    def read_validated_frame(self) -> tuple[bool, Optional[np.ndarray], float]:
        """Read one frame and run the validation checklist.

        Returns:
            (success, frame_or_None, monotonic_timestamp_ms)
            On failure: (False, None, 0.0) and increments drop counter.
        """
        self._frames_total += 1
        timestamp_ms = time.monotonic() * 1000.0

        ret, frame = self._cap.read()
        self._last_read_failed = not ret or frame is None

        if not self._validate_frame(ret, frame):
            self._frames_dropped += 1
            return False, None, 0.0

        self._last_valid_ms = timestamp_ms
        self._frame_times.append(timestamp_ms)

        return True, frame, timestamp_ms

    def get_health_status(self) -> dict:
        """Return a snapshot of camera health metrics."""
        now_ms = time.monotonic() * 1000.0
        last_age_ms = (
            now_ms - self._last_valid_ms
            if self._last_valid_ms > 0
            else float("inf")
        )

        return {
            "connected": self._cap.isOpened(),
            "fps_actual": self._calculate_fps(),
            "frames_total": self._frames_total,
            "frames_dropped": self._frames_dropped,
            "drop_rate_pct": (
                (self._frames_dropped / self._frames_total * 100.0)
                if self._frames_total > 0
                else 0.0
            ),
            "last_valid_frame_age_ms": round(last_age_ms, 2),
            "resolution": self._resolution,
            "backend": self._backend_name,
        }

    @property
    def last_read_failed(self) -> bool:
        """True if the last read produced no frame at all.

        Frames that were read but rejected by validation leave this False.
        """
        return self._last_read_failed

    def is_opened(self) -> bool:
        """Whether the underlying capture device is open."""
        return self._cap.isOpened()

    def release(self) -> None:
        """Release camera resources and log final statistics."""
        health = self.get_health_status()
        _log.info(
            "FaceCueCamera releasing: total=%d dropped=%d (%.1f%%) avg_fps=%.1f",
            health["frames_total"],
            health["frames_dropped"],
            health["drop_rate_pct"],
            health["fps_actual"],
        )
        self._cap.release()

    # ── Context manager support ───────────────────────────────

    def __enter__(self) -> "FaceCueCamera":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    # ── Private helpers ───────────────────────────────────────

    def _validate_frame(self, ret: bool, frame: Optional[np.ndarray]) -> bool:
        """Run the validation checklist on a captured frame."""
        if not ret:
            _log.debug("Validation FAIL: cap.read() returned ret=False")
            return False

        if frame is None:
            _log.debug("Validation FAIL: frame is None")
            return False

        # Grayscale or 4-channel frames break colour conversion
        if frame.ndim != 3:
            _log.debug("Validation FAIL: ndim=%d (expected 3)", frame.ndim)
            return False

        if frame.shape[2] != self.EXPECTED_CHANNELS:
            _log.debug(
                "Validation FAIL: channels=%d (expected %d)",
                frame.shape[2],
                self.EXPECTED_CHANNELS,
            )
            return False

        if frame.dtype != self.EXPECTED_DTYPE:
            _log.debug("Validation FAIL: dtype=%s (expected uint8)", frame.dtype)
            return False

        # Tiny frames yield garbage cascade hits
        h, w = frame.shape[:2]
        if h < self.MIN_HEIGHT or w < self.MIN_WIDTH:
            _log.debug(
                "Validation FAIL: resolution %dx%d below minimum %dx%d",
                w, h, self.MIN_WIDTH, self.MIN_HEIGHT,
            )
            return False

        mean_brightness = float(frame.mean())
        if mean_brightness <= self.MIN_MEAN_BRIGHTNESS:
            _log.debug(
                "Validation FAIL: all-black frame (mean=%.2f)", mean_brightness
            )
            return False

        if mean_brightness >= self.MAX_MEAN_BRIGHTNESS:
            _log.debug(
                "Validation FAIL: all-white frame (mean=%.2f)", mean_brightness
            )
            return False

        return True

    def _calculate_fps(self) -> float:
        """Compute rolling FPS over the last N valid frames."""
        if len(self._frame_times) < 2:
            return 0.0
        elapsed_ms = self._frame_times[-1] - self._frame_times[0]
        if elapsed_ms <= 0:
            return 0.0
        return (len(self._frame_times) - 1) * 1000.0 / elapsed_ms

    @staticmethod
    def _resolve_backend_name(backend: int) -> str:
        """Convert OpenCV backend constant to human-readable name."""
        names = {cv2.CAP_ANY: "Auto"}
        for attr, label in (("CAP_DSHOW", "DirectShow"),
                            ("CAP_MSMF", "MediaFoundation"),
                            ("CAP_V4L2", "V4L2"),
                            ("CAP_AVFOUNDATION", "AVFoundation")):
            if hasattr(cv2, attr):
                names.setdefault(getattr(cv2, attr), label)
        return names.get(backend, f"Unknown({backend})")
