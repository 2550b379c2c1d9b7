"""People detection with OpenCV's HOG descriptor.

The default people SVM shipped with OpenCV is fast enough to run on a
CPU at camera rates and needs no model download, which makes it the
default capability.  ``detectMultiScale`` is not safe to call from two
threads on the same descriptor, so calls are serialized.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Tuple

import cv2  # type: ignore
import numpy as np

from .base import DetectionCapability, Region

LOGGER = logging.getLogger(__name__)


class HOGPeopleDetector(DetectionCapability):
    """Detect upright people with the default HOG + linear SVM model.

    Parameters
    ----------
    win_stride : Tuple[int, int]
        Window stride passed to ``detectMultiScale``.
    scale : float
        Scale step of the detection pyramid.
    min_weight : float
        Discard detections whose SVM weight is below this value.
    """

    def __init__(self, win_stride: Tuple[int, int] = (8, 8), scale: float = 1.05, min_weight: float = 0.0) -> None:
        self.win_stride = tuple(win_stride)
        self.scale = scale
        self.min_weight = min_weight
        if not hasattr(cv2, "HOGDescriptor"):
            raise RuntimeError(f"OpenCV {cv2.__version__} has no HOGDescriptor; install opencv-python<5")
        self._hog = cv2.HOGDescriptor()
        self._hog.setSVMDetector(cv2.HOGDescriptor_getDefaultPeopleDetector())
        win_w, win_h = self._hog.winSize
        self._min_size = (int(win_h), int(win_w))
        self._lock = threading.Lock()
        LOGGER.info("HOG people detector ready (stride=%s, scale=%.2f)", self.win_stride, self.scale)

    def detect(self, frame: np.ndarray) -> List[Region]:
        # detectMultiScale aborts the process on frames smaller than the window
        if frame.shape[0] < self._min_size[0] or frame.shape[1] < self._min_size[1]:
            return []
        with self._lock:
            rects, weights = self._hog.detectMultiScale(frame, winStride=self.win_stride, scale=self.scale)
        regions: List[Region] = []
        for (x, y, w, h), weight in zip(rects, np.ravel(weights)):
            if float(weight) < self.min_weight:
                continue
            regions.append(Region(int(x), int(y), int(w), int(h), label="person", confidence=float(weight)))
        return regions
