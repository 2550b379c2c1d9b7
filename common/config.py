"""Configuration loading.

Settings come from three layers, later ones winning:

1. :data:`DEFAULT_CONFIG` below,
2. an optional YAML file (``config.yaml`` by default),
3. environment variables listed in :data:`ENV_OVERRIDES`.

Numeric environment values that fail to parse are ignored with a
warning and the previous layer's value is kept.
"""

from __future__ import annotations

import copy
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml  # type: ignore

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "camera": {
        "source": 0,
        "gstreamer": False,
    },
    "detector": {
        "backend": "hog",
        "model_path": "yolov8n.pt",
        "classes": ["person"],
        "confidence_threshold": 0.5,
        "input_size": 640,
        "hog_win_stride": [8, 8],
        "hog_scale": 1.05,
    },
    "schedule": {
        "interval_sec": 1,
        "frame_count": 60,
        "frame_delay_ms": 1,
        "stats_cron": "* * * * *",
        "poll_interval_sec": 1.0,
    },
    "storage": {
        "save_image_path": "./logs/detected",
        "image_ext": "jpg",
    },
    "preview": {
        "window_name": "homewatch",
        "window_width": None,
        "window_height": None,
    },
    "logging": {
        "level": "INFO",
        "log_dir": "./logs",
        "filename": "homewatch.log",
        "max_bytes": 10_000_000,
        "backup_count": 30,
    },
    "server": {
        "enabled": False,
        "host": "127.0.0.1",
        "port": 5000,
    },
}

# env var -> (section, key, parser)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "CAMERA_SOURCE": ("camera", "source", str),
    "SAVE_IMAGE_PATH": ("storage", "save_image_path", str),
    "SCHEDULE_DURATION": ("schedule", "interval_sec", int),
    "FRAME_COUNT": ("schedule", "frame_count", int),
    "FRAME_DELAY": ("schedule", "frame_delay_ms", int),
    "WINDOW_WIDTH": ("preview", "window_width", int),
    "WINDOW_HEIGHT": ("preview", "window_height", int),
    "LOG_LEVEL": ("logging", "level", str),
}


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def apply_env_overrides(config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    for var, (section, key, parser) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = parser(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: not a valid %s", var, raw, parser.__name__)
            continue
        config.setdefault(section, {})[key] = value
    return config


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Return the effective configuration dictionary.

    A missing file at ``path`` is not an error; defaults are used.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path and os.path.isfile(path):
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"{path}: invalid YAML: {exc}") from exc
        if not isinstance(data, Mapping):
            raise ValueError(f"{path}: top level must be a mapping")
        _merge(config, data)
    elif path:
        LOGGER.info("Config file %s not found; using defaults", path)
    return apply_env_overrides(config, environ)
