"""Camera sampling and save-on-detect coordination.

The :class:`Detector` ties a frame source, a detection capability and
an image sink to a :class:`~scheduling.Worker`.  It offers two ways of
driving the camera:

* :meth:`Detector.sample` is a headless sampling cycle registered as a
  worker job.  Each fire reads up to ``frame_count`` frames, runs
  detection synchronously on each and stops at the first positive
  detection, saving the annotated frame when a save path is configured.
* :meth:`Detector.preview` is an interactive loop that shows every frame
  in a preview window and hands a copy of every ``frame_count``-th frame
  to a background detection task.  Background work is bounded: one
  detection in flight at a time, new submissions are dropped while it
  runs.

Frame reads are serialized with a camera lock so both modes may share
one source.  The latest frame is kept for :meth:`Detector.current_frame`.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
from prometheus_client import Counter

from pipeline.camera_adapter import FrameSource, FrameSourceError, is_empty_frame
from pipeline.dispatch import BoundedDispatcher
from pipeline.image_sink import ImageSink, OpenCVImageSink, detection_image_name
from pipeline.preview import PreviewSink
from scheduling import Job, Worker, every

from .annotate import detect_and_annotate
from .base import DetectionCapability, DetectionResult

LOGGER = logging.getLogger(__name__)

DETECTOR_JOB_NAME = "Detector"

frames_read_counter = Counter("homewatch_frames_read_total", "Frames read from the camera")
empty_frames_counter = Counter("homewatch_empty_frames_total", "Empty frames skipped")
positive_detections_counter = Counter(
    "homewatch_positive_detections_total", "Sampled frames with at least one detection"
)
images_saved_counter = Counter("homewatch_images_saved_total", "Detection images written")
image_save_failures_counter = Counter(
    "homewatch_image_save_failures_total", "Detection images that could not be written"
)


class DetectorError(RuntimeError):
    """Raised when a detector cannot be constructed."""


@dataclass
class DetectorConfig:
    """Configuration for :class:`Detector`.

    Attributes
    ----------
    camera : FrameSource
        Opened frame source.  Required.
    worker : Worker
        Worker the sampling job is registered on.  Required.
    capability : DetectionCapability
        Detection implementation.  Required.
    image_sink : ImageSink, optional
        Writer for detection images; defaults to :class:`OpenCVImageSink`.
    save_image_path : str
        Directory for detection images.  Empty disables saving.
    image_ext : str
        Extension (and codec) of saved images.
    schedule_interval : float
        Seconds between sampling cycles.
    frame_count : int
        Frame budget per sampling cycle, and the detection cadence (every
        ``frame_count``-th frame) of the preview loop.
    frame_delay : float
        Seconds to sleep between frames.
    quit_keys : Tuple[int, ...]
        Key codes that end the preview loop.
    save_workers : int
        Maximum concurrent background saves in preview mode.
    logger : logging.Logger, optional
        Defaults to this module's logger.
    """

    camera: Optional[FrameSource] = None
    worker: Optional[Worker] = None
    capability: Optional[DetectionCapability] = None
    image_sink: Optional[ImageSink] = None
    save_image_path: str = ""
    image_ext: str = "jpg"
    schedule_interval: float = 1.0
    frame_count: int = 60
    frame_delay: float = 0.001
    quit_keys: Tuple[int, ...] = (ord("q"), 27)
    save_workers: int = 2
    logger: Optional[logging.Logger] = None


class Detector:
    """Sample a camera on a schedule and keep frames with detections."""

    def __init__(self, config: DetectorConfig) -> None:
        if config.camera is None:
            raise DetectorError("camera is None")
        if config.worker is None:
            raise DetectorError("worker is None")
        if config.capability is None:
            raise DetectorError("detection capability is None")
        if config.frame_count < 1:
            raise DetectorError(f"frame_count must be positive, got {config.frame_count}")
        self.config = config
        self.camera: Optional[FrameSource] = config.camera
        self.worker = config.worker
        self.capability = config.capability
        self.image_sink = config.image_sink or OpenCVImageSink()
        self.save_image_path = config.save_image_path
        self.frame_count = config.frame_count
        self.frame_delay = max(0.0, config.frame_delay)
        self.logger = config.logger or LOGGER

        if self.save_image_path:
            os.makedirs(self.save_image_path, exist_ok=True)

        self._camera_lock = threading.Lock()
        self._frame_lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self._stats_lock = threading.Lock()
        self._detect_dispatcher = BoundedDispatcher("detect", max_in_flight=1)
        self._save_dispatcher = BoundedDispatcher("save", max_in_flight=max(1, config.save_workers))
        self.last_detection_at: Optional[float] = None
        self.positive_detections = 0

        self.job: Job = self.worker.new_job(
            every(config.schedule_interval),
            self.sample,
            name=DETECTOR_JOB_NAME,
            tags=["detector"],
        )

        self.logger.info("camera is %s", "opened" if self.camera.is_opened() else "closed")
        self.logger.info("saveImagePath: %s", self.save_image_path or "<disabled>")
        self.logger.info("scheduled job: ID=%s, Name=%s", self.job.id, self.job.name)

    # ------------------------------------------------------------------
    # Frame access
    # ------------------------------------------------------------------

    def _read_frame(self) -> Optional[np.ndarray]:
        if self.camera is None:
            raise FrameSourceError("camera is closed")
        with self._camera_lock:
            ok, frame = self.camera.read()
        if not ok:
            raise FrameSourceError("cannot read device")
        frames_read_counter.inc()
        if not is_empty_frame(frame):
            with self._frame_lock:
                self._frame = frame.copy()
        return frame

    def current_frame(self) -> Optional[np.ndarray]:
        """Return a copy of the most recently read frame, if any."""
        with self._frame_lock:
            return None if self._frame is None else self._frame.copy()

    def _save(self, frame: np.ndarray, iteration: int) -> bool:
        name = detection_image_name(self.save_image_path, iteration, self.config.image_ext)
        if self.image_sink.write(name, frame):
            images_saved_counter.inc()
            self.logger.info("Saved image: %s", name)
            return True
        image_save_failures_counter.inc()
        self.logger.error("Failed to save image: %s", name)
        return False

    def _record_positive(self) -> None:
        positive_detections_counter.inc()
        with self._stats_lock:
            self.positive_detections += 1
            self.last_detection_at = time.time()

    # ------------------------------------------------------------------
    # Headless sampling
    # ------------------------------------------------------------------

    def sample(self) -> Optional[DetectionResult]:
        """Run one sampling cycle.

        Reads at most ``frame_count`` frames.  Empty frames count toward
        that limit, so a device returning only empty frames still ends the
        cycle after ``frame_count`` reads; they are neither detected on nor
        followed by the frame delay.  The first positive detection ends
        the cycle and is returned; ``None`` means the whole budget was
        sampled without a detection.

        Raises
        ------
        FrameSourceError
            If the camera fails to deliver a frame.
        """
        for iteration in range(self.frame_count):
            frame = self._read_frame()
            if is_empty_frame(frame):
                empty_frames_counter.inc()
                continue
            result = detect_and_annotate(self.capability, frame, self.logger)
            if result.positive:
                self._record_positive()
                if self.save_image_path:
                    self._save(frame, iteration)
                return result
            if self.frame_delay and iteration < self.frame_count - 1:
                time.sleep(self.frame_delay)
        return None

    # ------------------------------------------------------------------
    # Interactive preview
    # ------------------------------------------------------------------

    def preview(self, window: PreviewSink) -> int:
        """Show frames in ``window`` until a quit key is pressed.

        Every ``frame_count``-th frame is copied and handed to a
        background detection task.  Returns the number of frames shown.

        Raises
        ------
        FrameSourceError
            If the camera fails to deliver a frame.
        """
        frame_counter = 0
        while True:
            self.logger.debug("Read camera...")
            frame = self._read_frame()
            if is_empty_frame(frame):
                empty_frames_counter.inc()
                continue
            if frame_counter % self.frame_count == 0:
                self._detect_dispatcher.submit(self._detect_in_background, frame.copy(), frame_counter)
            self.logger.debug("Show frame: %d", frame_counter)
            window.show(frame)
            frame_counter += 1
            key = window.wait_key(1)
            if key != -1 and (key & 0xFF) in self.config.quit_keys:
                self.logger.info("Quitting...")
                break
            if self.frame_delay:
                time.sleep(self.frame_delay)
        return frame_counter

    def _detect_in_background(self, frame: np.ndarray, frame_counter: int) -> DetectionResult:
        # ``frame`` is a private copy; it is handed on to the save task as is.
        result = detect_and_annotate(self.capability, frame, self.logger)
        if result.positive:
            self._record_positive()
            if self.save_image_path:
                self._save_dispatcher.submit(self._save, frame, frame_counter)
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_schedule(self) -> None:
        """Block running the worker; see :meth:`Worker.run`."""
        self.worker.run()

    def stop_schedule(self) -> None:
        self.worker.stop()

    def close_camera(self) -> None:
        """Close the frame source if it is open.  Safe to call repeatedly."""
        camera = self.camera
        if camera is None or not camera.is_opened():
            return
        with self._camera_lock:
            camera.close()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting background work, waiting for in-flight tasks."""
        self._detect_dispatcher.shutdown(wait=wait)
        self._save_dispatcher.shutdown(wait=wait)

    def status(self) -> Dict[str, Any]:
        with self._stats_lock:
            positives, last_at = self.positive_detections, self.last_detection_at
        return {
            "camera_opened": bool(self.camera is not None and self.camera.is_opened()),
            "save_image_path": self.save_image_path or None,
            "job_id": self.job.id,
            "job_name": self.job.name,
            "frame_count": self.frame_count,
            "positive_detections": positives,
            "last_detection_at": last_at,
            "dispatch": {
                "detect": dict(self._detect_dispatcher.stats),
                "save": dict(self._save_dispatcher.stats),
            },
        }
