"""Entry point for HomeWatch.

Three commands are available:

``run``
    Headless mode.  Opens the camera, registers the detector's sampling
    job on a worker and blocks running the scheduler.  Ctrl-C (SIGINT)
    or SIGTERM stops the scheduler, closes the camera and exits 0.
``preview``
    Interactive mode.  Shows the camera in a window and runs detection
    in the background on every ``frame_count``-th frame.  Press ``q`` to
    quit.
``detect``
    Single-shot mode.  Runs detection on one image and writes an
    annotated copy to the output directory when something is found.

Settings are read from ``config.yaml`` (see ``--config``) and can be
overridden with environment variables such as ``SCHEDULE_DURATION``,
``FRAME_COUNT`` and ``FRAME_DELAY``.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Any, Dict, Optional

import cv2  # type: ignore

from common.config import load_config
from common.logging import setup_logging
from detection import (
    DetectionCapability,
    Detector,
    DetectorConfig,
    HOGPeopleDetector,
    YOLODetector,
    detect_and_annotate,
)
from pipeline.camera_adapter import CameraAdapter, FrameSourceError, is_empty_frame, parse_source
from pipeline.image_sink import OpenCVImageSink, detection_image_name
from pipeline.preview import OpenCVWindow
from scheduling import InvalidTriggerError, Worker, WorkerConfig, WorkerError

LOGGER = logging.getLogger("homewatch")


def build_capability(config: Dict[str, Any]) -> DetectionCapability:
    det_cfg = config.get("detector", {})
    backend = str(det_cfg.get("backend", "hog")).lower()
    if backend == "hog":
        return HOGPeopleDetector(
            win_stride=tuple(det_cfg.get("hog_win_stride", (8, 8))),
            scale=float(det_cfg.get("hog_scale", 1.05)),
        )
    if backend == "yolo":
        return YOLODetector(
            model_path=det_cfg.get("model_path", "yolov8n.pt"),
            classes=det_cfg.get("classes", ["person"]),
            confidence_threshold=float(det_cfg.get("confidence_threshold", 0.5)),
            input_size=int(det_cfg.get("input_size", 640)),
        )
    raise ValueError(f"Unknown detector backend: {backend}")


def build_detector(config: Dict[str, Any]) -> Detector:
    """Open the camera and wire a detector onto a fresh worker."""
    cam_cfg = config.get("camera", {})
    sched_cfg = config.get("schedule", {})
    storage_cfg = config.get("storage", {})

    camera = CameraAdapter(parse_source(cam_cfg.get("source", 0)), gstreamer=bool(cam_cfg.get("gstreamer")))
    try:
        worker = Worker(
            WorkerConfig(
                poll_interval=float(sched_cfg.get("poll_interval_sec", 1.0)),
                stats_cron=sched_cfg.get("stats_cron", "* * * * *"),
                logger=logging.getLogger("homewatch.scheduler"),
            )
        )
        return Detector(
            DetectorConfig(
                camera=camera,
                worker=worker,
                capability=build_capability(config),
                image_sink=OpenCVImageSink(),
                save_image_path=storage_cfg.get("save_image_path", ""),
                image_ext=storage_cfg.get("image_ext", "jpg"),
                schedule_interval=float(sched_cfg.get("interval_sec", 1)),
                frame_count=int(sched_cfg.get("frame_count", 60)),
                frame_delay=int(sched_cfg.get("frame_delay_ms", 1)) / 1000.0,
                logger=logging.getLogger("homewatch.detector"),
            )
        )
    except Exception:
        camera.close()
        raise


def _start_server(config: Dict[str, Any], detector: Detector) -> None:
    from ui.server import create_app

    server_cfg = config.get("server", {})
    host = server_cfg.get("host", "127.0.0.1")
    port = int(server_cfg.get("port", 5000))
    flask_app = create_app(detector.worker, detector)

    def _run_flask() -> None:
        flask_app.run(host=host, port=port, threaded=True, use_reloader=False)

    threading.Thread(target=_run_flask, name="status-server", daemon=True).start()
    LOGGER.info("Status server available at http://%s:%s", host, port)


def run_headless(config: Dict[str, Any]) -> int:
    try:
        detector = build_detector(config)
    except (RuntimeError, ValueError, ImportError, InvalidTriggerError) as exc:
        LOGGER.critical("Startup failed: %s", exc)
        return 1

    if config.get("server", {}).get("enabled"):
        _start_server(config, detector)

    def _signal_handler(signum: int, frame: Any) -> None:
        LOGGER.info("Received exit signal %s", signal.Signals(signum).name)
        LOGGER.info("Stop scheduler")
        detector.stop_schedule()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    status = 0
    try:
        detector.start_schedule()
    except WorkerError as exc:
        LOGGER.critical("Scheduler shutdown failed: %s", exc)
        status = 1
    finally:
        detector.shutdown()

    LOGGER.info("Close camera")
    try:
        detector.close_camera()
    except FrameSourceError as exc:
        LOGGER.critical("Camera close failed: %s", exc)
        return 1
    LOGGER.info("Exit")
    return status


def run_preview(config: Dict[str, Any]) -> int:
    try:
        detector = build_detector(config)
    except (RuntimeError, ValueError, ImportError, InvalidTriggerError) as exc:
        LOGGER.critical("Startup failed: %s", exc)
        return 1

    preview_cfg = config.get("preview", {})
    window = OpenCVWindow(
        name=preview_cfg.get("window_name", "homewatch"),
        width=preview_cfg.get("window_width"),
        height=preview_cfg.get("window_height"),
    )
    status = 0
    try:
        detector.preview(window)
    except FrameSourceError as exc:
        LOGGER.critical("%s", exc)
        status = 1
    finally:
        window.close()
        detector.shutdown()
        detector.close_camera()
    return status


def detect_image(input_path: str, output_dir: str, config: Dict[str, Any]) -> int:
    """Single-shot detection.  Returns a process exit status."""
    img = cv2.imread(input_path, cv2.IMREAD_COLOR)
    if is_empty_frame(img):
        LOGGER.critical("Cannot read image: %s", input_path)
        return 1

    try:
        capability = build_capability(config)
    except (RuntimeError, ValueError, ImportError) as exc:
        LOGGER.critical("Startup failed: %s", exc)
        return 1
    result = detect_and_annotate(capability, img, LOGGER)
    if not result.positive:
        LOGGER.info("Nothing detected in %s", input_path)
        return 0

    os.makedirs(output_dir, exist_ok=True)
    ext = config.get("storage", {}).get("image_ext", "jpg")
    name = detection_image_name(output_dir, ext=ext)
    if OpenCVImageSink().write(name, img):
        print(f"Saved image: {name}")
    else:
        print(f"Failed to save image: {name}")
    return 0


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="HomeWatch camera detector")
    parser.add_argument("--config", default="config.yaml", help="Path to configuration YAML file")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Sample the camera on a schedule (default)")
    sub.add_parser("preview", help="Show the camera with background detection")
    detect = sub.add_parser("detect", help="Run detection on a single image")
    detect.add_argument("-i", "--input", required=True, help="Input file path")
    detect.add_argument("-o", "--output", default=".", help="Output directory")
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.critical("Cannot load config %s: %s", args.config, exc)
        return 1
    setup_logging(config.get("logging", {}))

    command = args.command or "run"
    if command == "detect":
        return detect_image(args.input, args.output, config)
    if command == "preview":
        return run_preview(config)
    return run_headless(config)


if __name__ == "__main__":
    sys.exit(main())
