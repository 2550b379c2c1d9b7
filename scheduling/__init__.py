"""Scheduling package for HomeWatch.

:class:`Worker` drives recurring :class:`Job` objects on top of
APScheduler and reports their statistics.  Build triggers with
:func:`every` for fixed intervals or :func:`cron` for crontab
expressions.
"""

from .job import InvalidTriggerError, Job, JobStats, cron, every
from .worker import JobNotFoundError, Worker, WorkerConfig, WorkerError

__all__ = [
    "InvalidTriggerError",
    "Job",
    "JobNotFoundError",
    "JobStats",
    "Worker",
    "WorkerConfig",
    "WorkerError",
    "cron",
    "every",
]
