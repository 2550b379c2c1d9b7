"""Flask status server for HomeWatch.

This module exposes :func:`create_app`, which constructs a small Flask
application reporting what the scheduler and detector are doing.  It
expects to be called from the main application (see ``app.py``) with
the running :class:`~scheduling.Worker` and, optionally, the
:class:`~detection.Detector` whose job it drives.

Endpoints:

* ``/api/jobs``: the worker's stats snapshot, one entry per job.
* ``/api/status``: uptime plus detector status.
* ``/api/frame.jpg``: the most recent camera frame as JPEG.
* ``/metrics``: Prometheus exposition of the process metrics.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import cv2  # type: ignore
from flask import Flask, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from detection import Detector
from scheduling import Worker


def create_app(worker: Worker, detector: Optional[Detector] = None) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    worker : Worker
        Worker whose jobs are reported.
    detector : Detector, optional
        Detector whose status and latest frame are served.  When omitted
        the frame endpoint always answers 404.

    Returns
    -------
    Flask
        Configured Flask app ready to run.
    """
    app = Flask(__name__)

    @app.route("/api/jobs")
    def api_jobs() -> Tuple[Any, int, Dict[str, str]]:
        stats = [entry.to_dict() for entry in worker.stats()]
        return jsonify(stats), 200, {"Cache-Control": "no-cache"}

    @app.route("/api/status")
    def api_status() -> Tuple[Any, int]:
        payload: Dict[str, Any] = {
            "running": worker.running,
            "uptime_sec": round(worker.uptime, 3),
            "jobs": len(worker.jobs()),
            "detector": detector.status() if detector is not None else None,
        }
        return jsonify(payload), 200

    @app.route("/api/frame.jpg")
    def api_frame() -> Any:
        frame = detector.current_frame() if detector is not None else None
        if frame is None:
            return "No frame available", 404
        ok, encoded = cv2.imencode(".jpg", frame)
        if not ok:
            return "Cannot encode frame", 500
        return Response(encoded.tobytes(), mimetype="image/jpeg", headers={"Cache-Control": "no-cache"})

    @app.route("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), content_type=CONTENT_TYPE_LATEST)

    return app
