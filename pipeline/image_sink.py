"""Image sinks for frames that triggered a detection.

An :class:`ImageSink` persists a single frame under a given file name and
reports success as a boolean; it never raises for encoder or filesystem
problems so that the detection loop can log and carry on.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import cv2  # type: ignore
import numpy as np

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class ImageSink(ABC):
    """Interface for single-file image writers."""

    @abstractmethod
    def write(self, name: str, frame: np.ndarray) -> bool:
        """Write ``frame`` to ``name``.  Returns True on success."""


class OpenCVImageSink(ImageSink):
    """Encode frames with ``cv2.imwrite``; the extension picks the codec."""

    def write(self, name: str, frame: np.ndarray) -> bool:
        try:
            return bool(cv2.imwrite(name, frame))
        except cv2.error as exc:
            LOGGER.debug("cv2.imwrite raised for %s: %s", name, exc)
            return False


def detection_image_name(
    directory: str,
    iteration: Optional[int] = None,
    ext: str = "jpg",
    now: Optional[datetime] = None,
) -> str:
    """Build ``<directory>/<YYYYmmddHHMMSS>[_<iteration>].<ext>``."""
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    stem = stamp if iteration is None else f"{stamp}_{iteration}"
    return os.path.join(directory, f"{stem}.{ext.lstrip('.')}")
