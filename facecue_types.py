"""
FaceCue - Shared Types
======================
Rectangles, per-face observations, facial events and per-frame
results passed between the detector, tracker, HUD and engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, List, Optional, Sequence

import numpy as np


# ─── Event kinds ──────────────────────────────────────────────
BLINK = "blink"
MOUTH_OPEN = "mouth_open"
EYEBROW_RAISE = "eyebrow_raise"

EVENT_KINDS = (BLINK, MOUTH_OPEN, EYEBROW_RAISE)


# ─── Errors ───────────────────────────────────────────────────

class FaceCueError(Exception):
    """Base class for FaceCue session errors."""


class CascadeLoadError(FaceCueError):
    """A Haar cascade file is missing or failed to load."""


class CameraUnavailableError(FaceCueError):
    """The capture device could not be opened."""


# ─── Geometry ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Rect:
    """Axis-aligned box, origin top-left, relative to the searched region."""
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_tuple(cls, values: Sequence[Any]) -> "Rect":
        x, y, w, h = (int(v) for v in values[:4])
        return cls(x, y, w, h)

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def offset(self, dx: int, dy: int) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class FaceObservation:
    """One detected face with the eyes and mouths found inside it.

    Eye rectangles are relative to the face (the upper search window
    starts at the face origin). Mouth rectangles are relative to the
    lower search window, which starts at ``face.height // 2``.
    """
    face: Rect
    eyes: List[Rect] = field(default_factory=list)
    mouths: List[Rect] = field(default_factory=list)

    @property
    def split_y(self) -> int:
        return self.face.height // 2

    def upper_region(self) -> Rect:
        """Eye search window, relative to the face."""
        return Rect(0, 0, self.face.width, self.split_y)

    def lower_region(self) -> Rect:
        """Mouth search window, relative to the face."""
        return Rect(0, self.split_y, self.face.width, self.face.height - self.split_y)

    @property
    def eye_count(self) -> int:
        return len(self.eyes)

    @property
    def mouth_open(self) -> bool:
        return len(self.mouths) > 0

    def eyes_in_frame(self) -> List[Rect]:
        return [e.offset(self.face.x, self.face.y) for e in self.eyes]

    def mouths_in_frame(self) -> List[Rect]:
        dy = self.face.y + self.split_y
        return [m.offset(self.face.x, dy) for m in self.mouths]


@dataclass
class FacialEvent:
    """A counted, debounced event."""
    kind: str
    count: int
    timestamp_ms: float
    face_index: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FrameResult:
    """Outcome of processing one frame."""
    frame: Optional[np.ndarray]
    timestamp_ms: float
    faces: List[FaceObservation]
    events: List[FacialEvent]
    counts: dict
    fps: float
    timing_breakdown: dict = field(default_factory=dict)
    camera_health: dict = field(default_factory=dict)
