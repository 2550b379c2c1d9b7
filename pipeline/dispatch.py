"""Bounded background dispatch for detection and save work.

The interactive preview loop must never wait on detection latency, but
spawning a thread per sampled frame lets work pile up without limit
when detection is slower than the cadence.  :class:`BoundedDispatcher`
runs tasks on a ``ThreadPoolExecutor`` and admits at most
``max_in_flight`` of them at a time; a submission arriving while the
limit is reached is dropped and counted instead of queued.

Callers are responsible for handing over data the task may own, e.g. a
copy of the frame buffer rather than the buffer itself.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from prometheus_client import Counter

LOGGER = logging.getLogger(__name__)

dispatch_dropped_counter = Counter(
    "homewatch_dispatch_dropped_total",
    "Background tasks dropped because the dispatcher was saturated",
    ["dispatcher"],
)
dispatch_failed_counter = Counter(
    "homewatch_dispatch_failed_total",
    "Background tasks that raised an exception",
    ["dispatcher"],
)


class BoundedDispatcher:
    """Fire-and-forget executor with a hard cap on in-flight tasks.

    Parameters
    ----------
    name : str
        Used for thread names, log messages and metric labels.
    max_in_flight : int
        Maximum number of tasks running or queued at once.
    """

    def __init__(self, name: str, max_in_flight: int = 1) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self.name = name
        self.max_in_flight = max_in_flight
        self._slots = threading.BoundedSemaphore(max_in_flight)
        self._executor = ThreadPoolExecutor(max_workers=max_in_flight, thread_name_prefix=name)
        self._stats_lock = threading.Lock()
        self._closed = False
        self.stats: Dict[str, int] = {"submitted": 0, "completed": 0, "failed": 0, "dropped": 0}

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        """Run ``fn`` in the background, or drop it when saturated.

        Returns the task's future, or ``None`` if it was dropped.
        """
        if self._closed or not self._slots.acquire(blocking=False):
            with self._stats_lock:
                self.stats["dropped"] += 1
            dispatch_dropped_counter.labels(dispatcher=self.name).inc()
            LOGGER.debug("%s dispatcher busy; dropping task", self.name)
            return None
        with self._stats_lock:
            self.stats["submitted"] += 1
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            # executor shut down between the closed check and submit
            self._slots.release()
            with self._stats_lock:
                self.stats["dropped"] += 1
            return None
        future.add_done_callback(self._on_done)
        return future

    @property
    def in_flight(self) -> int:
        with self._stats_lock:
            return self.stats["submitted"] - self.stats["completed"] - self.stats["failed"]

    def _on_done(self, future: Future) -> None:
        self._slots.release()
        exc = future.exception()
        with self._stats_lock:
            if exc is None:
                self.stats["completed"] += 1
            else:
                self.stats["failed"] += 1
        if exc is not None:
            dispatch_failed_counter.labels(dispatcher=self.name).inc()
            LOGGER.error("%s task failed: %s", self.name, exc)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; in-flight tasks always run to completion."""
        self._closed = True
        self._executor.shutdown(wait=wait)
