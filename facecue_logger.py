"""
FaceCue - Structured Session Logger
===================================
Logs every counted facial event, warning and error in JSONL
format for post-session review.

Key Features:
  - JSONL (Newline Delimited JSON) format
  - Thread-safe appends
  - Levels: SYSTEM, EVENT, WARN, ERROR
"""

import json
import logging
import os
import sys
import threading
import time
from typing import Any, Dict, Optional

import numpy as np

_log = logging.getLogger("FaceCueLogger")


class FaceCueJSONEncoder(json.JSONEncoder):
    """Handles NumPy types for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


class FaceCueLogger:
    """JSONL session log for FaceCue."""

    def __init__(self, log_dir: str = "logs", filename: str = "facecue_session.jsonl"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, filename)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "event": "session_start",
            "python_version": sys.version,
            "platform": sys.platform
        }, level="SYSTEM")

    def log(self, data: Dict[str, Any], level: str = "EVENT", event: Optional[str] = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data
        }

        line = json.dumps(entry, cls=FaceCueJSONEncoder) + "\n"

        with self._lock:
            if self._file.closed:
                return
            self._file.write(line)
            self._file.flush()

    def log_event(self, event_data: Dict[str, Any]):
        """Helper for counted facial events."""
        self.log(event_data, level="EVENT", event="facial_event")

    def warn(self, message: str, context: Optional[Dict] = None):
        """Log structured warning."""
        _log.warning(message)
        self.log({"message": message, "context": context}, level="WARN", event="system_warning")

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log structured error with exception details."""
        _log.error(message, **kwargs)
        err_details = str(exception) if exception else None
        self.log({"message": message, "exception": err_details}, level="ERROR", event="system_error")

    def close(self, summary: Optional[Dict[str, Any]] = None):
        """Clean shutdown."""
        with self._lock:
            closed = self._file.closed
        if closed:
            return
        self.log({"message": "Session ending", "summary": summary or {}},
                 level="SYSTEM", event="session_end")
        with self._lock:
            self._file.close()


# One open logger per log directory
_loggers: Dict[str, FaceCueLogger] = {}


def get_logger(log_dir="logs"):
    key = os.path.abspath(log_dir)
    logger = _loggers.get(key)
    if logger is None or logger._file.closed:
        logger = FaceCueLogger(log_dir)
        _loggers[key] = logger
    return logger
