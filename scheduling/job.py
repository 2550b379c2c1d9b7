"""Schedulable jobs and their statistics.

A :class:`Job` wraps a zero-argument task together with the APScheduler
trigger that decides when it fires.  The worker owns every job and hands
each one the lock that guards its collection, so the last-run timestamp
and last error can be updated from an executor thread while the stats
routine reads them from another.

Triggers are built with :func:`every` (fixed interval) or :func:`cron`
(crontab expression).  Both validate their input up front and raise
:class:`InvalidTriggerError` so a malformed schedule fails at
registration time rather than inside the engine.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

LOGGER = logging.getLogger(__name__)


class InvalidTriggerError(ValueError):
    """Raised when a job trigger cannot be built or is not a trigger."""


def every(interval: Union[float, int, timedelta]) -> IntervalTrigger:
    """Return a trigger firing every ``interval`` (seconds or timedelta)."""
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else interval
    try:
        seconds = float(seconds)
    except (TypeError, ValueError) as exc:
        raise InvalidTriggerError(f"invalid interval: {interval!r}") from exc
    if seconds <= 0:
        raise InvalidTriggerError(f"interval must be positive, got {seconds}")
    return IntervalTrigger(seconds=seconds)


def cron(expression: str) -> CronTrigger:
    """Return a trigger for a standard five-field crontab expression."""
    try:
        return CronTrigger.from_crontab(expression)
    except (TypeError, ValueError) as exc:
        raise InvalidTriggerError(f"invalid cron expression {expression!r}: {exc}") from exc


@dataclass
class JobStats:
    """Point-in-time view of a job, as reported by the stats routine."""

    id: str
    name: str
    error: Optional[str] = None
    last_run: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "error": self.error,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "tags": list(self.tags),
        }

    def to_json(self) -> str:
        """Serialize to a compact JSON string.

        Raises ``TypeError`` or ``ValueError`` if a field is not
        serializable; callers reporting many jobs skip the offending entry.
        """
        return json.dumps(self.to_dict(), separators=(",", ":"), allow_nan=False)


class Job:
    """A named unit of recurring work registered on a :class:`Worker`.

    Parameters
    ----------
    job_id : str
        Unique, immutable identifier within the owning worker.
    name : str
        Human readable name.  Names need not be unique.
    trigger : BaseTrigger
        APScheduler trigger deciding when the job fires.
    task : Callable
        Work to run on each fire.
    lock : threading.RLock
        The owning worker's collection lock.
    """

    def __init__(
        self,
        job_id: str,
        name: str,
        trigger: BaseTrigger,
        task: Callable[..., Any],
        lock: threading.RLock,
        tags: Iterable[str] = (),
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._id = job_id
        self.name = name
        self.trigger = trigger
        self.task = task
        self.tags = frozenset(tags)
        self.args = tuple(args)
        self.kwargs = dict(kwargs or {})
        self._lock = lock
        self._last_run: Optional[datetime] = None
        self._last_error: Optional[BaseException] = None
        self._engine_job: Any = None
        self.on_finish: Optional[Callable[["Job", Optional[BaseException]], None]] = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def last_run(self) -> Optional[datetime]:
        with self._lock:
            return self._last_run

    @property
    def last_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._last_error

    @property
    def next_run_time(self) -> Optional[datetime]:
        if self._engine_job is None:
            return None
        return getattr(self._engine_job, "next_run_time", None)

    def bind(self, engine_job: Any) -> None:
        """Attach the engine-side job handle returned by APScheduler."""
        self._engine_job = engine_job

    def run_now(self) -> None:
        """Ask the engine to fire this job as soon as possible.

        The trigger is kept, so later fires follow the normal schedule.
        """
        if self._engine_job is None:
            raise RuntimeError(f"job {self._id} is not registered with a scheduler")
        self._engine_job.modify(next_run_time=datetime.now(timezone.utc))

    def __call__(self) -> Any:
        started = datetime.now(timezone.utc)
        with self._lock:
            self._last_run = started
        try:
            result = self.task(*self.args, **self.kwargs)
        except Exception as exc:
            with self._lock:
                self._last_error = exc
            self._finished(exc)
            raise
        with self._lock:
            self._last_error = None
        self._finished(None)
        return result

    def _finished(self, error: Optional[BaseException]) -> None:
        if self.on_finish is not None:
            self.on_finish(self, error)

    def snapshot(self) -> JobStats:
        with self._lock:
            error = self._last_error
            return JobStats(
                id=self._id,
                name=self.name,
                error=str(error) if error is not None else None,
                last_run=self._last_run,
                tags=sorted(self.tags),
            )

    def __repr__(self) -> str:
        return f"Job(id={self._id!r}, name={self.name!r}, tags={sorted(self.tags)!r})"
