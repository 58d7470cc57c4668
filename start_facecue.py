"""
FaceCue - Launcher
==================
Main entry point. Opens the webcam (or a video file), counts blinks,
mouth openings and eyebrow raises, and shows the annotated feed.

Usage:
  python start_facecue.py --source 0
  python start_facecue.py --source clip.mp4 --headless
  python start_facecue.py --state-scope per_face
"""

import argparse
import logging
import sys

import cv2
import yaml

from facecue_engine import DEFAULT_CONFIG, FaceCueEngine
from facecue_types import FaceCueError
from facecue_utils import load_config, merge_config, setup_logger


WINDOW_NAME = "FaceCue"

LOGGER_NAMES = (
    "FaceCue", "FaceCueEngine", "FaceCueCamera", "FaceCueDetector",
    "FaceCueTracker", "FaceCueHUD", "FaceCueLogger",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FaceCue facial event counter")
    parser.add_argument("--source", type=str, default=None, help="Camera ID (0, 1, etc.) or video file path")
    parser.add_argument("--config", type=str, default=None, help="Path to a config.yaml")
    parser.add_argument("--headless", action="store_true", help="Run without UI window")
    parser.add_argument("--width", type=int, default=None, help="Camera width")
    parser.add_argument("--height", type=int, default=None, help="Camera height")
    parser.add_argument("--state-scope", choices=("shared", "per_face"), default=None,
                        help="Edge state shared across faces or kept per tracked face")
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for the JSONL session log")
    parser.add_argument("--verbose", action="store_true", help="Debug-level console logging")
    return parser


def build_config(args: argparse.Namespace) -> dict:
    """Defaults ← config file ← command-line flags."""
    cli = {
        "camera_width": args.width,
        "camera_height": args.height,
        "state_scope": args.state_scope,
        "log_dir": args.log_dir,
    }
    if args.source is not None:
        cli["camera_id"] = int(args.source) if args.source.isdigit() else args.source
    return merge_config(DEFAULT_CONFIG, load_config(args.config), cli)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    for name in LOGGER_NAMES:
        setup_logger(name, level)
    log = logging.getLogger("FaceCue")

    try:
        config = build_config(args)
        log.info("Starting: source=%s scope=%s", config["camera_id"], config["state_scope"])
        engine = FaceCueEngine(config)
    except (FaceCueError, ValueError, OSError, yaml.YAMLError) as e:
        log.error("Startup failed: %s", e)
        return 1

    if not args.headless:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)

    log.info("Session active. Press 'Q' or 'ESC' to exit.")

    try:
        while engine.running:
            result = engine.step()

            if result is not None and result.frame is not None and not args.headless:
                cv2.imshow(WINDOW_NAME, result.frame)

            if not args.headless:
                key = cv2.waitKey(1) & 0xFF
                if key in (ord('q'), ord('Q'), 27):  # Q or ESC
                    log.info("Exit key pressed: shutting down")
                    break
    except KeyboardInterrupt:
        log.info("Interrupted by user")
    finally:
        engine.release()
        if not args.headless:
            cv2.destroyAllWindows()

    counts = engine.tracker.counts()
    log.info(
        "Totals: blinks=%d mouth=%d eyebrows=%d",
        counts["blinks"], counts["mouth_opens"], counts["eyebrow_raises"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
