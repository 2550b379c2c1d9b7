"""Camera adapter abstraction.

This module defines the :class:`FrameSource` interface consumed by the
detector and :class:`CameraAdapter`, a lightweight wrapper around
``cv2.VideoCapture`` implementing it.  The adapter accepts USB/webcam
indexes, RTSP/HTTP URLs and local video files.  If GStreamer is
installed, a pipeline string can be passed directly as the ``source``.

:meth:`CameraAdapter.read` returns ``(ok, frame)`` exactly like OpenCV:
``ok`` is ``False`` when the device failed to deliver a frame, while an
``ok`` read may still carry an empty frame (see :func:`is_empty_frame`)
which callers are expected to skip.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import cv2  # type: ignore
import numpy as np

LOGGER = logging.getLogger(__name__)


class FrameSourceError(RuntimeError):
    """Raised when a frame source cannot deliver or release frames."""


def is_empty_frame(frame: Optional[np.ndarray]) -> bool:
    """Return True for frames that carry no pixels."""
    return frame is None or getattr(frame, "size", 0) == 0


class FrameSource(ABC):
    """Interface for anything that produces video frames."""

    @abstractmethod
    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Block until the next frame is available and return ``(ok, frame)``."""

    @abstractmethod
    def is_opened(self) -> bool:
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying device."""


class CameraAdapter(FrameSource):
    """Wraps OpenCV video capture objects.

    Parameters
    ----------
    source : Any
        Source specification.  It can be:

        * an integer index (e.g. 0) for a USB camera,
        * a string containing a file path or an RTSP/HTTP URL,
        * a string specifying a GStreamer pipeline (``gstreamer=True``).
    gstreamer : bool, optional
        Open string sources with the GStreamer backend.
    """

    def __init__(self, source: Any, gstreamer: bool = False) -> None:
        self.source = source
        self.gstreamer = gstreamer
        self.cap: Optional[cv2.VideoCapture] = None
        self._open()

    def _open(self) -> None:
        if isinstance(self.source, int):
            self.cap = cv2.VideoCapture(self.source)
        elif self.gstreamer:
            self.cap = cv2.VideoCapture(self.source, cv2.CAP_GSTREAMER)
        else:
            self.cap = cv2.VideoCapture(self.source)
        if not self.cap or not self.cap.isOpened():
            LOGGER.error("Failed to open video source: %s", self.source)
            raise RuntimeError(f"Cannot open video source {self.source}")
        LOGGER.info("Opened video source %s", self.source)

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if not self.cap:
            return False, None
        ok, frame = self.cap.read()
        if not ok:
            LOGGER.warning("Failed to read frame from source %s", self.source)
        return ok, frame

    def is_opened(self) -> bool:
        return self.cap is not None and self.cap.isOpened()

    def close(self) -> None:
        if self.cap:
            try:
                self.cap.release()
            except cv2.error as exc:
                raise FrameSourceError(f"Cannot release video source {self.source}: {exc}") from exc
            self.cap = None
            LOGGER.info("Released video source %s", self.source)


def parse_source(value: Any) -> Any:
    """Interpret ``"0"``-style strings as device indexes."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value
