"""
FaceCue - Session Engine
========================
Single-threaded frame loop tying the modules together:

  camera → Haar detector → facial event tracker → HUD

Exactly one frame is processed to completion before the next one
is read, so the tracker never sees concurrent updates.
"""

import os
import time
import logging
from collections import deque
from typing import Optional

import numpy as np
import psutil

from facecue_camera import FaceCueCamera
from facecue_detector import HaarFrameDetector
from facecue_hud import FaceCueHUD
from facecue_logger import get_logger
from facecue_tracker import FacialEventTracker
from facecue_types import FacialEvent, FrameResult
from facecue_utils import merge_config

_log = logging.getLogger("FaceCueEngine")

DEFAULT_CONFIG = {
    "camera_id": 0,
    "camera_width": 640,
    "camera_height": 480,
    "cascade_dir": "data",
    "face_cascade": "haarcascade_frontalface_default.xml",
    "eye_cascade": "haarcascade_eye.xml",
    "mouth_cascade": "haarcascade_mcs_mouth.xml",
    "face_scale_factor": 1.3,
    "face_min_neighbors": 5,
    "eye_scale_factor": 1.1,
    "eye_min_neighbors": 3,
    "mouth_scale_factor": 1.7,
    "mouth_min_neighbors": 11,
    "eyebrow_ratio": 0.2,
    "eyebrow_cooldown_ms": 1000,
    "state_scope": "shared",
    "log_dir": "logs",
    "max_consecutive_drops": 100,
}


class FaceCueEngine:
    """
    Frame-driven session core.
    Owns the camera, detector, tracker, HUD and session log.
    """

    def __init__(self, config: Optional[dict] = None):
        """Build all session modules.

        Raises:
            CascadeLoadError: a cascade file is missing or empty.
            CameraUnavailableError: the capture source cannot be opened.
        """
        self.config = merge_config(DEFAULT_CONFIG, config)

        self.logger = get_logger(self.config["log_dir"])
        self.logger.log({"event": "engine_init_start", "config": self.config}, level="SYSTEM")

        self.camera = None
        self.detector = None
        try:
            self.tracker = FacialEventTracker(
                eyebrow_ratio=self.config["eyebrow_ratio"],
                eyebrow_cooldown_ms=self.config["eyebrow_cooldown_ms"],
                state_scope=self.config["state_scope"],
            )
            self.tracker.add_listener(self._on_event)

            self.detector = HaarFrameDetector(
                face_cascade=self.config["face_cascade"],
                eye_cascade=self.config["eye_cascade"],
                mouth_cascade=self.config["mouth_cascade"],
                cascade_dir=self.config["cascade_dir"],
                face_params=(self.config["face_scale_factor"], self.config["face_min_neighbors"]),
                eye_params=(self.config["eye_scale_factor"], self.config["eye_min_neighbors"]),
                mouth_params=(self.config["mouth_scale_factor"], self.config["mouth_min_neighbors"]),
            )
            self.camera = FaceCueCamera(
                camera_id=self.config["camera_id"],
                width=self.config["camera_width"],
                height=self.config["camera_height"],
            )
        except Exception as e:
            self.logger.error(f"Session start failed: {e}", exception=e)
            if self.detector is not None:
                self.detector.release()
            self.logger.close()
            raise

        self.hud = FaceCueHUD()

        self.running = True
        self._consecutive_drops = 0
        self._frame_stamps = deque(maxlen=30)
        self._process = psutil.Process(os.getpid())
        self._memory_baseline = self._process.memory_info().rss

        self.logger.log({"event": "engine_init_complete"}, level="SYSTEM")

    # ── Frame loop ────────────────────────────────────────────

    def step(self) -> Optional[FrameResult]:
        """Read one camera frame and process it.

        Returns None when the frame was dropped. Frames rejected by
        validation (dark, saturated) are skipped indefinitely. The engine
        stops when the camera closes, or after max_consecutive_drops
        reads that return no frame at all (end of a video file).
        """
        ok, frame, ts_ms = self.camera.read_validated_frame()
        if ok:
            self._consecutive_drops = 0
            return self.process_frame(frame, ts_ms)

        if self.camera.last_read_failed:
            self._consecutive_drops += 1
        else:
            self._consecutive_drops = 0

        if not self.camera.is_opened() or \
                self._consecutive_drops >= self.config["max_consecutive_drops"]:
            self.logger.warn("Camera stopped delivering frames",
                             {"consecutive_drops": self._consecutive_drops})
            self.running = False
        return None

    def process_frame(self, frame: np.ndarray, ts_ms: float) -> FrameResult:
        """Full pipeline for one frame."""
        t_start = time.monotonic()

        faces = self.detector.detect(frame)
        t_detect = time.monotonic()

        events = self.tracker.update(faces, ts_ms)
        t_track = time.monotonic()

        self._frame_stamps.append(ts_ms)

        result = FrameResult(
            frame=None,
            timestamp_ms=ts_ms,
            faces=faces,
            events=events,
            counts=self.tracker.counts(),
            fps=self._calculate_fps(),
            camera_health=self.camera.get_health_status() if self.camera else {},
        )
        result.frame, t_hud = self.hud.render(frame, result)

        result.timing_breakdown = {
            "detect_ms": round((t_detect - t_start) * 1000.0, 2),
            "track_ms": round((t_track - t_detect) * 1000.0, 2),
            "hud_ms": round(t_hud * 1000.0, 2),
        }
        return result

    def _on_event(self, event: FacialEvent) -> None:
        self.logger.log_event(event.to_dict())

    def _calculate_fps(self) -> float:
        if len(self._frame_stamps) < 2:
            return 0.0
        elapsed_ms = self._frame_stamps[-1] - self._frame_stamps[0]
        if elapsed_ms <= 0:
            return 0.0
        return (len(self._frame_stamps) - 1) * 1000.0 / elapsed_ms

    # ── Lifecycle ─────────────────────────────────────────────

    def get_summary(self) -> dict:
        summary = self.tracker.get_summary()
        rss = self._process.memory_info().rss
        summary["memory_mb"] = round(rss / 1024 / 1024, 1)
        summary["memory_growth_mb"] = round((rss - self._memory_baseline) / 1024 / 1024, 1)
        return summary

    def release(self) -> None:
        """Stop the session and free resources."""
        self.running = False
        summary = self.get_summary()
        _log.info(
            "Session ended: blinks=%d mouth=%d eyebrows=%d frames=%d",
            summary["blinks"], summary["mouth_opens"],
            summary["eyebrow_raises"], summary["frames_processed"],
        )
        if self.camera is not None:
            self.camera.release()
        if self.detector is not None:
            self.detector.release()
        self.logger.close(summary)
