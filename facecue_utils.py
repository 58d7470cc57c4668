"""
FaceCue - Shared Utility Module
===============================
Config loading (config.yaml) and console logger setup shared by
every FaceCue module.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import yaml


# ===================================================================
# Configuration
# ===================================================================

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, 'config.yaml')


def load_config(path: Optional[str] = None) -> dict:
    """Load configuration from config.yaml.

    An explicit path must exist. When no path is given, the bundled
    config.yaml is used if present, otherwise an empty dict.
    """
    target = path or _config_path
    if path is None and not os.path.exists(target):
        return {}
    with open(target, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def merge_config(defaults: dict, *overrides: Optional[dict]) -> dict:
    """Shallow-merge override dicts onto defaults, skipping None values."""
    merged = dict(defaults)
    for override in overrides:
        if not override:
            continue
        merged.update({k: v for k, v in override.items() if v is not None})
    return merged


# ===================================================================
# Logging Setup
# ===================================================================

def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a configured logger for FaceCue modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] %(name)-12s %(levelname)-7s %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
