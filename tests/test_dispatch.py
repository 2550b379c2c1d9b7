"""Tests for BoundedDispatcher."""

import os
import sys
import threading
import time

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pipeline.dispatch import BoundedDispatcher


class TestBoundedDispatcher:
    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            BoundedDispatcher("bad", max_in_flight=0)

    def test_runs_task_and_counts_completion(self):
        dispatcher = BoundedDispatcher("unit")
        future = dispatcher.submit(lambda a, b: a + b, 2, b=3)
        assert future is not None
        assert future.result(timeout=2) == 5
        dispatcher.shutdown()
        assert dispatcher.stats["completed"] == 1
        assert dispatcher.in_flight == 0

    def test_drops_while_saturated(self):
        dispatcher = BoundedDispatcher("unit", max_in_flight=1)
        gate = threading.Event()
        first = dispatcher.submit(gate.wait, 2)
        assert first is not None

        assert dispatcher.submit(lambda: None) is None
        assert dispatcher.submit(lambda: None) is None
        assert dispatcher.in_flight == 1

        gate.set()
        first.result(timeout=2)
        dispatcher.shutdown()
        assert dispatcher.stats == {"submitted": 1, "completed": 1, "failed": 0, "dropped": 2}

    def test_slot_is_released_after_completion(self):
        dispatcher = BoundedDispatcher("unit", max_in_flight=1)
        dispatcher.submit(lambda: None).result(timeout=2)
        # the done callback may still be running on the pool thread
        deadline = time.time() + 2
        while dispatcher.in_flight and time.time() < deadline:
            time.sleep(0.01)

        assert dispatcher.submit(lambda: None) is not None
        dispatcher.shutdown()
        assert dispatcher.stats["completed"] == 2

    def test_failures_are_counted_and_logged(self, caplog):
        dispatcher = BoundedDispatcher("unit")

        def boom():
            raise RuntimeError("detector exploded")

        with caplog.at_level("ERROR", logger="pipeline.dispatch"):
            future = dispatcher.submit(boom)
            with pytest.raises(RuntimeError):
                future.result(timeout=2)
            dispatcher.shutdown()
        assert dispatcher.stats["failed"] == 1
        assert "detector exploded" in caplog.text

    def test_submit_after_shutdown_is_dropped(self):
        dispatcher = BoundedDispatcher("unit")
        dispatcher.shutdown()
        assert dispatcher.submit(lambda: None) is None
        assert dispatcher.stats["dropped"] == 1
