"""Shared detect-and-annotate step.

Used by the scheduled sampling cycle, the interactive preview and the
single-shot command line so the three paths draw and log detections the
same way.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

import cv2  # type: ignore
import numpy as np
from prometheus_client import Counter, Histogram

from .base import DetectionCapability, DetectionResult

LOGGER = logging.getLogger(__name__)

BOX_COLOR: Tuple[int, int, int] = (0, 255, 0)  # BGR green
BOX_THICKNESS = 3

detection_latency_histogram = Histogram(
    "homewatch_detection_latency_seconds", "Latency of a single detection call"
)
regions_detected_counter = Counter(
    "homewatch_regions_detected_total", "Total number of regions reported by the detector"
)


def draw_regions(frame: np.ndarray, result: DetectionResult) -> np.ndarray:
    for region in result.regions:
        cv2.rectangle(frame, region.top_left, region.bottom_right, BOX_COLOR, BOX_THICKNESS)
    return frame


def detect_and_annotate(
    capability: DetectionCapability,
    frame: np.ndarray,
    logger: Optional[logging.Logger] = None,
    annotate: bool = True,
) -> DetectionResult:
    """Run ``capability`` on ``frame`` and draw each region onto it in place.

    The caller must own ``frame``; pass a copy when the buffer is shared.
    """
    logger = logger or LOGGER
    started = time.perf_counter()
    regions = capability.detect(frame)
    detection_latency_histogram.observe(time.perf_counter() - started)
    result = DetectionResult(regions=list(regions))
    for region in result.regions:
        logger.info("Detected %s at: %s", region.label, region.to_dict())
    if result.positive:
        regions_detected_counter.inc(len(result.regions))
        if annotate:
            draw_regions(frame, result)
    return result
