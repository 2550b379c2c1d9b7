"""Interactive preview windows."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import cv2  # type: ignore
import numpy as np

LOGGER = logging.getLogger(__name__)


class PreviewSink(ABC):
    """Interface for displaying frames and polling the keyboard."""

    @abstractmethod
    def show(self, frame: np.ndarray) -> None:
        ...

    @abstractmethod
    def wait_key(self, timeout_ms: int) -> int:
        """Wait up to ``timeout_ms`` for a key press; -1 when none."""

    def close(self) -> None:
        pass


class OpenCVWindow(PreviewSink):
    """HighGUI window, optionally resized to ``width`` x ``height``."""

    def __init__(self, name: str = "homewatch", width: Optional[int] = None, height: Optional[int] = None) -> None:
        self.name = name
        cv2.namedWindow(self.name, cv2.WINDOW_NORMAL)
        if width and height:
            cv2.resizeWindow(self.name, int(width), int(height))
            LOGGER.info("Preview window resized to %dx%d", width, height)

    def show(self, frame: np.ndarray) -> None:
        cv2.imshow(self.name, frame)

    def wait_key(self, timeout_ms: int) -> int:
        return cv2.waitKey(timeout_ms)

    def close(self) -> None:
        cv2.destroyWindow(self.name)
