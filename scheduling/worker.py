"""Job worker built on APScheduler.

The :class:`Worker` owns a collection of :class:`~scheduling.job.Job`
objects and drives them with a ``BackgroundScheduler``.  Its
:meth:`Worker.run` method blocks the calling thread: it registers an
internal ``stats`` job that logs a JSON snapshot of every job once a
minute, starts the engine, fires the stats job immediately and then
waits on a stop token until :meth:`Worker.stop` is called.

The stop token is a :class:`threading.Event`, so ``stop()`` never blocks
on delivery and may be called before ``run()`` has started; in that case
the next ``run()`` returns after its first poll.

Jobs run on the engine's thread pool, concurrently with the polling loop
and with each other.  Every access to the job collection and to per-job
run state goes through a single re-entrant lock owned by the worker.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers import SchedulerNotRunningError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from prometheus_client import Counter

from .job import InvalidTriggerError, Job, JobStats, cron

LOGGER = logging.getLogger(__name__)

STATS_JOB_NAME = "stats"

job_runs_counter = Counter(
    "homewatch_job_runs_total", "Number of completed job executions", ["job"]
)
job_failures_counter = Counter(
    "homewatch_job_failures_total", "Number of job executions that raised", ["job"]
)
job_skipped_counter = Counter(
    "homewatch_job_skipped_total", "Fires skipped because the previous run was still active", ["job"]
)


class WorkerError(RuntimeError):
    """Raised when the scheduling engine cannot be set up or shut down."""


class JobNotFoundError(WorkerError):
    """Raised when a job id is not registered on the worker."""


@dataclass
class WorkerConfig:
    """Configuration for :class:`Worker`.

    Attributes
    ----------
    scheduler_options : Dict[str, Any]
        Keyword options forwarded to ``BackgroundScheduler`` (for example
        ``timezone`` or ``job_defaults``).
    poll_interval : float
        Seconds between checks of the stop token inside :meth:`Worker.run`.
    stats_cron : str
        Crontab expression for the internal stats job.
    shutdown_wait : bool
        Whether :meth:`Worker.stop` waits for running jobs to finish.
    logger : logging.Logger, optional
        Logger for worker messages.  Defaults to this module's
        logger.
    """

    scheduler_options: Dict[str, Any] = field(default_factory=dict)
    poll_interval: float = 1.0
    stats_cron: str = "* * * * *"
    shutdown_wait: bool = True
    logger: Optional[logging.Logger] = None


class Worker:
    """Run registered jobs on a schedule and report their statistics."""

    def __init__(self, config: Optional[WorkerConfig] = None) -> None:
        config = config or WorkerConfig()
        if config.poll_interval <= 0:
            raise WorkerError(f"poll_interval must be positive, got {config.poll_interval}")
        self.config = config
        self.logger = config.logger or LOGGER
        options: Dict[str, Any] = {"job_defaults": {"coalesce": True, "max_instances": 1}}
        options.update(config.scheduler_options)
        try:
            self._scheduler = BackgroundScheduler(**options)
        except (TypeError, ValueError, LookupError) as exc:
            raise WorkerError(f"cannot initialise scheduler: {exc}") from exc
        self._scheduler.add_listener(self._record_skip, EVENT_JOB_MAX_INSTANCES)
        self._lock = threading.RLock()
        self._engine_lock = threading.RLock()  # re-entered from signal handlers calling stop()
        self._jobs: Dict[str, Job] = {}
        self._stop_event = threading.Event()
        self._running = threading.Event()
        self._start_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Job registry
    # ------------------------------------------------------------------

    def new_job(
        self,
        trigger: BaseTrigger,
        task: Callable[..., Any],
        name: Optional[str] = None,
        tags: Iterable[str] = (),
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """Register ``task`` to run whenever ``trigger`` fires.

        Raises
        ------
        InvalidTriggerError
            If ``trigger`` is not an APScheduler trigger or the engine
            rejects it.
        """
        if not isinstance(trigger, BaseTrigger):
            raise InvalidTriggerError(f"not a trigger: {trigger!r}")
        if not callable(task):
            raise TypeError(f"task must be callable, got {task!r}")
        job_id = str(uuid.uuid4())
        job = Job(
            job_id=job_id,
            name=name or getattr(task, "__name__", job_id),
            trigger=trigger,
            task=task,
            lock=self._lock,
            tags=tags,
            args=args,
            kwargs=kwargs,
        )
        job.on_finish = self._record_run
        with self._lock:
            try:
                engine_job = self._scheduler.add_job(job, trigger=trigger, id=job_id, name=job.name)
            except (TypeError, ValueError) as exc:
                raise InvalidTriggerError(f"scheduler rejected job {job.name!r}: {exc}") from exc
            job.bind(engine_job)
            self._jobs[job_id] = job
        self.logger.debug("Registered job %s (%s) with trigger %s", job.name, job_id, trigger)
        return job

    def jobs(self) -> List[Job]:
        with self._lock:
            return list(self._jobs.values())

    def find_job_by_id(self, job_id: str) -> Optional[Job]:
        for job in self.jobs():
            if job.id == job_id:
                return job
        return None

    def find_job_by_name(self, name: str) -> Optional[Job]:
        for job in self.jobs():
            if job.name == name:
                return job
        return None

    def remove_job(self, job_id: str) -> None:
        """Detach a job from the worker and the engine.

        Raises
        ------
        JobNotFoundError
            If no job with ``job_id`` is registered.
        """
        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError as exc:
                raise JobNotFoundError(job_id) from exc
            job = self._jobs.pop(job_id)
        self.logger.debug("Removed job %s (%s)", job.name, job_id)

    def stats(self) -> List[JobStats]:
        """Return one consistent :class:`JobStats` entry per registered job."""
        with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running.is_set()

    @property
    def uptime(self) -> float:
        """Seconds elapsed since :meth:`run` started, 0 before that."""
        if self._start_at is None:
            return 0.0
        return time.time() - self._start_at

    def run(self) -> None:
        """Start the engine and block until :meth:`stop` is called."""
        stats_job = self.find_job_by_name(STATS_JOB_NAME)
        if stats_job is None:
            stats_job = self.new_job(
                cron(self.config.stats_cron),
                self._report_stats,
                name=STATS_JOB_NAME,
                tags=[STATS_JOB_NAME],
            )
        with self._engine_lock:
            self._scheduler.start()
        self._start_at = time.time()
        self._running.set()
        self.logger.info("Scheduler started at %s", time.strftime("%Y-%m-%d %H:%M:%S"))
        try:
            try:
                stats_job.run_now()
            except JobLookupError:
                # engine already shut down by a concurrent stop()
                self.logger.debug("Stats job not fired: scheduler stopped during startup")
            while not self._stop_event.wait(self.config.poll_interval):
                pass
            self.logger.info("Scheduler stop requested")
        finally:
            self._running.clear()
            self._shutdown_engine()

    def stop(self) -> None:
        """Signal :meth:`run` to return and shut the engine down.

        Raises
        ------
        WorkerError
            If the engine fails to shut down.
        """
        self._stop_event.set()
        self._shutdown_engine()

    def _shutdown_engine(self) -> None:
        with self._engine_lock:
            if not self._scheduler.running:
                return
            try:
                self._scheduler.shutdown(wait=self.config.shutdown_wait)
            except SchedulerNotRunningError:
                return
            except RuntimeError as exc:
                raise WorkerError(f"scheduler shutdown failed: {exc}") from exc
        self.logger.info("Scheduler stopped")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _record_skip(self, event: JobSubmissionEvent) -> None:
        job = self.find_job_by_id(event.job_id)
        name = job.name if job is not None else event.job_id
        job_skipped_counter.labels(job=name).inc()
        self.logger.debug("Job %s skipped: previous run still active", name)

    def _record_run(self, job: Job, error: Optional[BaseException]) -> None:
        job_runs_counter.labels(job=job.name).inc()
        if error is not None:
            job_failures_counter.labels(job=job.name).inc()
            self.logger.error("Job %s (%s) failed: %s", job.name, job.id, error)

    def _report_stats(self) -> None:
        self.logger.info("running time: %.3f sec", self.uptime)
        for entry in self.stats():
            try:
                line = entry.to_json()
            except (TypeError, ValueError) as exc:
                self.logger.error("cannot serialize stats for job %s: %s", entry.id, exc)
                continue
            self.logger.info("%s", line)
