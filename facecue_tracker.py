"""
FaceCue - Facial Event Tracker
==============================
Turns per-frame detection rectangles into debounced, counted events.

Events:
  - Blink:          eyes visible → no eyes (falling edge of eye count)
  - Mouth open:     no mouth → mouth detected (rising edge)
  - Eyebrow raise:  eye box sits in the top 20% of the face,
                    rate-limited by a 1000 ms cooldown gate

Counters are session-global and only ever move by +1. The edge
state (previous eye count, previous mouth state) is shared across
all faces in a frame by default, so with several faces the last
processed face carries into the next frame. Setting
state_scope="per_face" keeps edge state per tracked face instead.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from facecue_types import (
    BLINK,
    EYEBROW_RAISE,
    MOUTH_OPEN,
    FaceObservation,
    FacialEvent,
)

_log = logging.getLogger("FaceCueTracker")

STATE_SCOPES = ("shared", "per_face")


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


# ===================================================================
# Cooldown Gate
# ===================================================================

class CooldownGate:
    """Timestamp-gated rate limiter.

    The gate is open once at least ``cooldown_ms`` has elapsed since it
    last fired. It has never fired initially, so the first check passes.
    """

    def __init__(self, cooldown_ms: float = 1000.0):
        if cooldown_ms < 0:
            raise ValueError(f"cooldown_ms must be >= 0, got {cooldown_ms}")
        self.cooldown_ms = float(cooldown_ms)
        self._last_fired_ms = float("-inf")

    @property
    def last_fired_ms(self) -> float:
        return self._last_fired_ms

    def is_open(self, now_ms: float) -> bool:
        return now_ms - self._last_fired_ms >= self.cooldown_ms

    def fire(self, now_ms: float) -> None:
        self._last_fired_ms = float(now_ms)

    def try_fire(self, now_ms: float) -> bool:
        """Fire if open. Returns whether the gate fired."""
        if not self.is_open(now_ms):
            return False
        self.fire(now_ms)
        return True

    def reset(self) -> None:
        self._last_fired_ms = float("-inf")


# ===================================================================
# Tracker State
# ===================================================================

@dataclass
class EdgeState:
    """Previous-frame observations used for edge detection."""
    prev_eye_count: int = 0
    prev_mouth_open: bool = False


@dataclass
class TrackerState:
    """Session state: counters plus the shared edge state."""
    blink_count: int = 0
    mouth_count: int = 0
    eyebrow_count: int = 0
    prev_eye_count: int = 0
    prev_mouth_open: bool = False
    last_eyebrow_event_ms: float = float("-inf")


# ===================================================================
# Identity Tracker (per_face scope)
# ===================================================================

class IdentityTracker:
    """Simple IOU-based tracker for temporal consistency across frames."""

    def __init__(self, iou_threshold: float = 0.3, max_age: int = 30):
        self.identities = {}  # id -> {"bbox": bbox, "age": age}
        self.next_id = 0
        self.iou_threshold = iou_threshold
        self.max_age = max_age

    @staticmethod
    def iou(a: tuple, b: tuple) -> float:
        x, y, w, h = a
        lx, ly, lw, lh = b
        inter_x1 = max(x, lx)
        inter_y1 = max(y, ly)
        inter_x2 = min(x + w, lx + lw)
        inter_y2 = min(y + h, ly + lh)
        if inter_x2 <= inter_x1 or inter_y2 <= inter_y1:
            return 0.0
        inter_area = (inter_x2 - inter_x1) * (inter_y2 - inter_y1)
        union_area = (w * h) + (lw * lh) - inter_area
        return inter_area / union_area if union_area > 0 else 0.0

    def get_id(self, bbox: tuple, exclude: Iterable[int] = ()) -> int:
        """Match bbox to a known identity or start a new one.

        Ids in ``exclude`` (already claimed this frame) are never matched.
        """
        taken = set(exclude)
        best_id = -1
        max_iou = 0.0

        for fid, data in self.identities.items():
            if fid in taken:
                continue
            overlap = self.iou(bbox, data["bbox"])
            if overlap > max_iou:
                max_iou = overlap
                best_id = fid

        if max_iou > self.iou_threshold:
            self.identities[best_id]["bbox"] = bbox
            self.identities[best_id]["age"] = 0
            return best_id

        nid = self.next_id
        self.identities[nid] = {"bbox": bbox, "age": 0}
        self.next_id += 1
        return nid

    def purge_stale(self, visible_ids: Iterable[int]) -> List[int]:
        """Age unseen identities and drop those past max_age.

        Returns the removed ids.
        """
        visible = set(visible_ids)
        to_del = []
        for fid, data in self.identities.items():
            if fid not in visible:
                data["age"] += 1
                if data["age"] > self.max_age:
                    to_del.append(fid)
        for fid in to_del:
            del self.identities[fid]
        return to_del

    def reset(self) -> None:
        self.identities.clear()
        self.next_id = 0


# ===================================================================
# Facial Event Tracker
# ===================================================================

EventListener = Callable[[FacialEvent], None]


class FacialEventTracker:
    """Debounced blink / mouth-open / eyebrow-raise counter.

    Call ``update`` exactly once per video frame with that frame's faces
    in detector order. Events are pushed to listeners as soon as the
    counter changes and are also returned from ``update``.
    """

    def __init__(
        self,
        eyebrow_ratio: float = 0.2,
        eyebrow_cooldown_ms: float = 1000.0,
        state_scope: str = "shared",
        clock: Callable[[], float] = monotonic_ms,
        identity_tracker: Optional[IdentityTracker] = None,
    ):
        """Initialize tracker.

        Args:
            eyebrow_ratio: An eye whose top edge lies above this fraction
                of the face height counts as a raised eyebrow.
            eyebrow_cooldown_ms: Minimum spacing between eyebrow events.
            state_scope: "shared" or "per_face" (see module docstring).
            clock: Millisecond clock, read once per frame when update()
                is not given an explicit timestamp.
            identity_tracker: Face association used by "per_face" scope.
        """
        if state_scope not in STATE_SCOPES:
            raise ValueError(f"Unknown state_scope: {state_scope!r}. "
                             f"Supported: {', '.join(STATE_SCOPES)}")

        self.eyebrow_ratio = eyebrow_ratio
        self.state_scope = state_scope
        self.state = TrackerState()
        self._clock = clock
        self._eyebrow_gate = CooldownGate(eyebrow_cooldown_ms)
        self._identities = identity_tracker or IdentityTracker()
        self._face_edges: dict[int, EdgeState] = {}
        self._listeners: List[EventListener] = []
        self._frames_processed = 0

    # ── Listeners ─────────────────────────────────────────────

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        self._listeners.remove(listener)

    # ── Per-frame update ──────────────────────────────────────

    def update(
        self,
        faces: List[FaceObservation],
        now_ms: Optional[float] = None,
    ) -> List[FacialEvent]:
        """Process one frame's detections.

        Args:
            faces: Face observations in detector output order. An empty
                list is valid and leaves all state untouched.
            now_ms: Frame timestamp in milliseconds. Read from the clock
                once per frame if omitted.

        Returns:
            Events emitted for this frame, in emission order.
        """
        if now_ms is None:
            now_ms = self._clock()
        self._frames_processed += 1

        face_ids = self._assign_ids(faces)
        events: List[FacialEvent] = []

        for index, obs in enumerate(faces):
            edge = self._edge_for(face_ids[index])
            self._check_blink(obs, edge, index, now_ms, events)
            self._check_eyebrows(obs, index, now_ms, events)
            self._check_mouth(obs, edge, index, now_ms, events)

        if self.state_scope == "per_face":
            for fid in self._identities.purge_stale(face_ids):
                self._face_edges.pop(fid, None)

        return events

    def _check_blink(self, obs, edge, index, now_ms, events) -> None:
        eye_count = obs.eye_count
        if eye_count == 0 and edge.prev_eye_count > 0:
            self.state.blink_count += 1
            self._emit(BLINK, self.state.blink_count, now_ms, index, events)
            _log.info("Blink detected: total=%d", self.state.blink_count)
        edge.prev_eye_count = eye_count

    def _check_eyebrows(self, obs, index, now_ms, events) -> None:
        limit = obs.face.height * self.eyebrow_ratio
        for eye in obs.eyes:
            if eye.y < limit and self._eyebrow_gate.try_fire(now_ms):
                self.state.eyebrow_count += 1
                self.state.last_eyebrow_event_ms = now_ms
                self._emit(EYEBROW_RAISE, self.state.eyebrow_count, now_ms, index, events)
                _log.info("Eyebrow raise detected: total=%d", self.state.eyebrow_count)

    def _check_mouth(self, obs, edge, index, now_ms, events) -> None:
        mouth_open = obs.mouth_open
        if mouth_open and not edge.prev_mouth_open:
            self.state.mouth_count += 1
            self._emit(MOUTH_OPEN, self.state.mouth_count, now_ms, index, events)
            _log.info("Mouth open detected: total=%d", self.state.mouth_count)
        edge.prev_mouth_open = mouth_open

    def _emit(self, kind, count, now_ms, index, events) -> None:
        event = FacialEvent(kind=kind, count=count, timestamp_ms=now_ms, face_index=index)
        events.append(event)
        for listener in self._listeners:
            listener(event)

    # ── Edge-state scoping ────────────────────────────────────

    def _assign_ids(self, faces: List[FaceObservation]) -> List[Optional[int]]:
        if self.state_scope != "per_face":
            return [None] * len(faces)
        ids: List[Optional[int]] = []
        for obs in faces:
            ids.append(self._identities.get_id(obs.face.as_tuple(), exclude=ids))
        return ids

    def _edge_for(self, face_id: Optional[int]):
        # Shared scope edits TrackerState's own prev_* fields.
        if face_id is None:
            return self.state
        if face_id not in self._face_edges:
            self._face_edges[face_id] = EdgeState()
        return self._face_edges[face_id]

    # ── Inspection ────────────────────────────────────────────

    def counts(self) -> dict:
        return {
            "blinks": self.state.blink_count,
            "mouth_opens": self.state.mouth_count,
            "eyebrow_raises": self.state.eyebrow_count,
        }

    def get_summary(self) -> dict:
        """Return counters plus bookkeeping for logging."""
        summary = self.counts()
        summary.update({
            "frames_processed": self._frames_processed,
            "state_scope": self.state_scope,
            "tracked_faces": len(self._face_edges),
        })
        return summary

    def reset(self) -> None:
        """Return to the initial state for a new session."""
        self.state = TrackerState()
        self._eyebrow_gate.reset()
        self._identities.reset()
        self._face_edges.clear()
        self._frames_processed = 0
