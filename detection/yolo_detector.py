"""Object detection with an Ultralytics YOLO model.

This capability is optional: the ``ultralytics`` package (and the torch
stack it pulls in) is only imported when a :class:`YOLODetector` is
constructed.  Install it with ``pip install homewatch[yolo]``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, List, Optional

import numpy as np

from .base import DetectionCapability, Region

LOGGER = logging.getLogger(__name__)


class YOLODetector(DetectionCapability):
    """Detect objects of the configured classes with a YOLO checkpoint.

    Parameters
    ----------
    model_path : str
        Path or hub name of a YOLO checkpoint (e.g. ``yolov8n.pt``).
    classes : Iterable[str]
        Class names to keep.  Other classes are filtered out.
    confidence_threshold : float
        Minimum confidence to accept a detection.
    input_size : int
        Inference image size.
    """

    def __init__(
        self,
        model_path: str = "yolov8n.pt",
        classes: Iterable[str] = ("person",),
        confidence_threshold: float = 0.5,
        input_size: int = 640,
        model: Optional[Any] = None,
    ) -> None:
        self.model_path = model_path
        self.classes = set(classes)
        self.confidence_threshold = confidence_threshold
        self.input_size = input_size
        self._lock = threading.Lock()
        self.model = model if model is not None else self._load_model()

    def _load_model(self) -> Any:
        from ultralytics import YOLO  # type: ignore

        LOGGER.info("Loading YOLO model from %s", self.model_path)
        try:
            return YOLO(self.model_path)
        except Exception as exc:
            LOGGER.error("Failed to load YOLO model: %s", exc)
            raise

    def detect(self, frame: np.ndarray) -> List[Region]:
        # The Ultralytics API expects RGB images.
        img_rgb = np.ascontiguousarray(frame[:, :, ::-1])
        with self._lock:
            results = self.model.predict(
                img_rgb, imgsz=self.input_size, conf=self.confidence_threshold, verbose=False
            )
        regions: List[Region] = []
        for result in results:
            for box in result.boxes:
                conf = float(box.conf.cpu().numpy().ravel()[0])
                cls_idx = int(box.cls.cpu().numpy().ravel()[0])
                label = self.model.names.get(cls_idx, str(cls_idx))
                if label not in self.classes or conf < self.confidence_threshold:
                    continue
                x1, y1, x2, y2 = box.xyxy[0].cpu().numpy()
                regions.append(
                    Region(int(x1), int(y1), int(x2 - x1), int(y2 - y1), label=label, confidence=conf)
                )
        return regions
