import time
import logging
import cv2
import numpy as np
from typing import Optional, Tuple

from facecue_types import (
    BLINK, EYEBROW_RAISE, MOUTH_OPEN,
    FaceObservation, FrameResult,
)

_log = logging.getLogger("FaceCueHUD")


class FaceCueHUD:
    """On-screen overlay for the facial event counters.

    Draws the detection boxes for every face, a counter panel, the
    FPS readout, a flash label for events fired this frame, and a
    status bar with face count and camera health.
    """

    # BGR
    FACE_COLOR = (0, 0, 255)     # Red
    EYE_COLOR = (0, 255, 0)      # Green
    MOUTH_COLOR = (255, 0, 0)    # Blue

    COUNTER_LABELS = (
        ("blinks", "Blinks"),
        ("mouth_opens", "Mouth"),
        ("eyebrow_raises", "Eyebrows"),
    )

    EVENT_LABELS = {
        BLINK: ("BLINK", (0, 255, 255)),            # Yellow
        MOUTH_OPEN: ("MOUTH OPEN", (255, 0, 255)),  # Magenta
        EYEBROW_RAISE: ("EYEBROWS UP", (0, 165, 255)),  # Orange
    }

    def __init__(self, show_boxes: bool = True):
        self.show_boxes = show_boxes
        _log.info("FaceCueHUD initialized")

    def render(self, frame: Optional[np.ndarray], result: FrameResult) -> Tuple[Optional[np.ndarray], float]:
        """Draw overlay onto a copy of the provided frame.

        Args:
            frame: BGR image.
            result: Output from FaceCueEngine.process_frame.

        Returns:
            (annotated_frame, hud_render_time_seconds)
        """
        t_hud_start = time.monotonic()

        if frame is None:
            return None, 0.0

        viz = frame.copy()

        if self.show_boxes:
            for face in result.faces:
                self._draw_face(viz, face)

        self._draw_counters(viz, result.counts)
        self._draw_fps(viz, result.fps)
        if result.events:
            self._draw_event_flash(viz, [e.kind for e in result.events])
        self._draw_status_bar(viz, result)

        t_hud = time.monotonic() - t_hud_start
        return viz, t_hud

    def _draw_face(self, frame: np.ndarray, face: FaceObservation):
        self._draw_rect(frame, face.face.as_tuple(), self.FACE_COLOR)
        for eye in face.eyes_in_frame():
            self._draw_rect(frame, eye.as_tuple(), self.EYE_COLOR)
        for mouth in face.mouths_in_frame():
            self._draw_rect(frame, mouth.as_tuple(), self.MOUTH_COLOR)

    @staticmethod
    def _draw_rect(frame: np.ndarray, box: Tuple[int, int, int, int], color):
        x, y, w, h = box
        cv2.rectangle(frame, (x, y), (x + w, y + h), color, 2)

    def _draw_counters(self, frame: np.ndarray, counts: dict):
        """Counter panel, top right."""
        h, w = frame.shape[:2]
        font = cv2.FONT_HERSHEY_SIMPLEX
        lines = [f"{label}: {counts.get(key, 0)}" for key, label in self.COUNTER_LABELS]

        widths = [cv2.getTextSize(t, font, 0.6, 1)[0][0] for t in lines]
        panel_w = max(widths) + 20
        panel_h = 25 * len(lines) + 10
        x0 = max(w - panel_w - 10, 0)

        cv2.rectangle(frame, (x0, 10), (x0 + panel_w, 10 + panel_h), (0, 0, 0), -1)
        for i, text in enumerate(lines):
            cv2.putText(frame, text, (x0 + 10, 35 + 25 * i),
                font, 0.6, (255, 255, 255), 1)

    def _draw_event_flash(self, frame: np.ndarray, kinds):
        """Short label for each event kind fired this frame, centred."""
        h, w = frame.shape[:2]
        font = cv2.FONT_HERSHEY_SIMPLEX
        seen = []
        for kind in kinds:
            if kind not in seen and kind in self.EVENT_LABELS:
                seen.append(kind)

        for i, kind in enumerate(seen):
            text, color = self.EVENT_LABELS[kind]
            (fw, fh), _ = cv2.getTextSize(text, font, 1.0, 2)
            cx, cy = w // 2, h // 3 + i * (fh + 20)
            cv2.putText(frame, text, (cx - fw // 2, cy), font, 1.0, color, 2)

    def _draw_status_bar(self, frame: np.ndarray, result: FrameResult):
        """Draw bottom status bar with face count and camera health."""
        h, w = frame.shape[:2]
        bar_h = 40
        # Semi-transparent background
        overlay = frame.copy()
        cv2.rectangle(overlay, (0, h - bar_h), (w, h), (0, 0, 0), -1)
        alpha = 0.6
        cv2.addWeighted(overlay, alpha, frame, 1 - alpha, 0, frame)

        faces = len(result.faces)
        status = f"FACES: {faces}" if faces else "NO FACE"
        cv2.putText(frame, status, (10, h - 12),
            cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 1)

        cam = result.camera_health
        cam_text = f"CAM: {cam.get('fps_actual', 0):.1f} FPS | Drop: {cam.get('drop_rate_pct', 0):.1f}%"

        # Right aligned
        text_w = cv2.getTextSize(cam_text, cv2.FONT_HERSHEY_SIMPLEX, 0.6, 1)[0][0]
        cv2.putText(frame, cam_text, (w - text_w - 10, h - 12),
            cv2.FONT_HERSHEY_SIMPLEX, 0.6, (200, 200, 200), 1)

    def _draw_fps(self, frame: np.ndarray, fps: float):
        cv2.putText(frame, f"FPS: {fps:.1f}", (10, 30),
            cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2)
