"""Tests for detection capabilities and the shared annotate step."""

import logging
import os
import sys
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from detection import DetectionCapability, DetectionResult, HOGPeopleDetector, Region, YOLODetector
from detection.annotate import BOX_COLOR, detect_and_annotate, draw_regions
from pipeline.image_sink import OpenCVImageSink, detection_image_name


class StaticCapability(DetectionCapability):
    def __init__(self, regions):
        self.regions = regions

    def detect(self, frame):
        return list(self.regions)


class TestDetectAndAnnotate:
    def test_positive_result_draws_green_boxes(self):
        frame = np.zeros((100, 100, 3), dtype=np.uint8)
        result = detect_and_annotate(StaticCapability([Region(10, 20, 30, 40)]), frame)

        assert result.positive
        assert len(result) == 1
        assert tuple(frame[20, 10]) == BOX_COLOR
        assert tuple(frame[60, 40]) == BOX_COLOR
        # interior untouched
        assert tuple(frame[40, 25]) == (0, 0, 0)

    def test_negative_result_leaves_frame_alone(self):
        frame = np.full((50, 50, 3), 9, dtype=np.uint8)
        result = detect_and_annotate(StaticCapability([]), frame)
        assert not result.positive
        assert (frame == 9).all()

    def test_annotate_can_be_disabled(self):
        frame = np.zeros((50, 50, 3), dtype=np.uint8)
        result = detect_and_annotate(StaticCapability([Region(5, 5, 10, 10)]), frame, annotate=False)
        assert result.positive
        assert not frame.any()

    def test_each_region_is_logged(self, caplog):
        logger = logging.getLogger("homewatch.test")
        regions = [Region(1, 1, 5, 5), Region(10, 10, 5, 5, label="car", confidence=0.9)]
        with caplog.at_level(logging.INFO, logger="homewatch.test"):
            detect_and_annotate(StaticCapability(regions), np.zeros((32, 32, 3), np.uint8), logger)
        messages = [r.getMessage() for r in caplog.records]
        assert sum(m.startswith("Detected ") for m in messages) == 2
        assert any("Detected car at:" in m for m in messages)

    def test_draw_regions_returns_frame(self):
        frame = np.zeros((20, 20, 3), dtype=np.uint8)
        assert draw_regions(frame, DetectionResult()) is frame

    def test_region_geometry(self):
        region = Region(3, 4, 10, 20)
        assert region.top_left == (3, 4)
        assert region.bottom_right == (13, 24)
        assert region.to_dict()["label"] == "person"


class TestHOGPeopleDetector:
    def test_blank_frame_has_no_people(self):
        detector = HOGPeopleDetector()
        frame = np.zeros((256, 192, 3), dtype=np.uint8)
        assert detector.detect(frame) == []

    def test_frame_smaller_than_window_is_skipped(self):
        detector = HOGPeopleDetector()
        assert detector.detect(np.zeros((40, 40, 3), dtype=np.uint8)) == []
        assert detector.detect(np.zeros((127, 320, 3), dtype=np.uint8)) == []

    def test_opencv_without_hog_raises_runtime_error(self):
        with patch("detection.hog_detector.cv2", SimpleNamespace(__version__="5.0.0")):
            with pytest.raises(RuntimeError, match="HOGDescriptor"):
                HOGPeopleDetector()


class TestYOLODetector:
    def _box(self, cls_idx, conf, xyxy):
        box = MagicMock()
        box.conf.cpu.return_value.numpy.return_value = np.array([conf])
        box.cls.cpu.return_value.numpy.return_value = np.array([cls_idx])
        box.xyxy = [MagicMock()]
        box.xyxy[0].cpu.return_value.numpy.return_value = np.array(xyxy, dtype=np.float32)
        return box

    def test_filters_by_class_and_confidence(self):
        model = MagicMock()
        model.names = {0: "person", 2: "car"}
        result = MagicMock()
        result.boxes = [
            self._box(0, 0.9, [10, 20, 50, 100]),
            self._box(2, 0.95, [0, 0, 5, 5]),
            self._box(0, 0.2, [0, 0, 5, 5]),
        ]
        model.predict.return_value = [result]
        detector = YOLODetector(classes=["person"], confidence_threshold=0.5, model=model)

        regions = detector.detect(np.zeros((120, 160, 3), dtype=np.uint8))

        assert regions == [Region(10, 20, 40, 80, label="person", confidence=0.9)]
        args, kwargs = model.predict.call_args
        assert kwargs["verbose"] is False
        assert args[0].shape == (120, 160, 3)


class TestImageNames:
    def test_name_with_iteration(self):
        now = datetime(2024, 1, 2, 3, 4, 5)
        name = detection_image_name("/tmp/det", 7, "jpg", now=now)
        assert name == os.path.join("/tmp/det", "20240102030405_7.jpg")

    def test_name_without_iteration(self):
        now = datetime(2024, 1, 2, 3, 4, 5)
        assert detection_image_name("out", ext=".png", now=now) == os.path.join("out", "20240102030405.png")

    def test_opencv_sink_writes_file(self, tmp_path):
        name = str(tmp_path / "frame.jpg")
        assert OpenCVImageSink().write(name, np.zeros((16, 16, 3), dtype=np.uint8))
        assert os.path.getsize(name) > 0

    def test_opencv_sink_reports_failure(self, tmp_path):
        name = str(tmp_path / "missing" / "frame.jpg")
        assert not OpenCVImageSink().write(name, np.zeros((16, 16, 3), dtype=np.uint8))
