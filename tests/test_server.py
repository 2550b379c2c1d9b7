"""Tests for the Flask status server."""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from detection import Detector, DetectorConfig
from scheduling import Worker, WorkerConfig, every
from ui.server import create_app

from test_detector import FakeCamera, FakeCapability, FakeSink, make_frame


@pytest.fixture
def worker():
    return Worker(WorkerConfig(scheduler_options={"timezone": "UTC"}))


@pytest.fixture
def detector(worker):
    camera = FakeCamera([make_frame(30)])
    return Detector(
        DetectorConfig(
            camera=camera,
            worker=worker,
            capability=FakeCapability(),
            image_sink=FakeSink(),
            frame_count=1,
            frame_delay=0.0,
        )
    )


class TestStatusServer:
    def test_jobs_endpoint_lists_stats(self, worker, detector):
        worker.new_job(every(60), lambda: None, name="housekeeping")
        client = create_app(worker, detector).test_client()

        response = client.get("/api/jobs")

        assert response.status_code == 200
        assert response.headers["Cache-Control"] == "no-cache"
        names = sorted(entry["name"] for entry in response.get_json())
        assert names == ["Detector", "housekeeping"]

    def test_status_endpoint(self, worker, detector):
        client = create_app(worker, detector).test_client()
        payload = client.get("/api/status").get_json()
        assert payload["running"] is False
        assert payload["jobs"] == 1
        assert payload["detector"]["job_name"] == "Detector"

    def test_status_without_detector(self, worker):
        payload = create_app(worker).test_client().get("/api/status").get_json()
        assert payload["detector"] is None

    def test_frame_endpoint_404_before_first_read(self, worker, detector):
        client = create_app(worker, detector).test_client()
        assert client.get("/api/frame.jpg").status_code == 404

    def test_frame_endpoint_serves_jpeg(self, worker, detector):
        detector.sample()
        client = create_app(worker, detector).test_client()

        response = client.get("/api/frame.jpg")

        assert response.status_code == 200
        assert response.mimetype == "image/jpeg"
        assert response.data[:2] == b"\xff\xd8"

    def test_metrics_endpoint(self, worker, detector):
        detector.sample()
        response = create_app(worker, detector).test_client().get("/metrics")
        assert response.status_code == 200
        assert b"homewatch_frames_read_total" in response.data
