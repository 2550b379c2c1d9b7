"""Detection module package.

This package exposes the detection side of HomeWatch:

* :mod:`base` defines the :class:`DetectionCapability` interface and the
  :class:`Region` / :class:`DetectionResult` types.
* :mod:`hog_detector` and :mod:`yolo_detector` provide concrete
  capabilities.  HOG runs on OpenCV alone; YOLO needs the optional
  ``ultralytics`` extra.
* :mod:`annotate` holds the detect-and-annotate step shared by every
  entry point.
* :mod:`detector` coordinates camera sampling, detection and saving on
  top of a :class:`scheduling.Worker`.
"""

from .annotate import detect_and_annotate
from .base import DetectionCapability, DetectionResult, Region
from .detector import Detector, DetectorConfig, DetectorError
from .hog_detector import HOGPeopleDetector
from .yolo_detector import YOLODetector

__all__ = [
    "DetectionCapability",
    "DetectionResult",
    "Detector",
    "DetectorConfig",
    "DetectorError",
    "HOGPeopleDetector",
    "Region",
    "YOLODetector",
    "detect_and_annotate",
]
