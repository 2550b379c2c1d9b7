# common/logging.py
from __future__ import annotations
import logging, os
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def level_from_name(name: Optional[str], default: int = logging.INFO) -> int:
    if not name:
        return default
    return _LEVELS.get(str(name).upper(), default)


def setup_logging(config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Configure the root logger to write to:
      - stderr (console)
      - <log_dir>/<filename> (rotating, size and backups from config)
    Returns the application logger ("homewatch").
    Idempotent: handlers installed by a previous call are replaced.
    """
    cfg = config or {}
    level = level_from_name(cfg.get("level"))
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler()]
    log_dir = cfg.get("log_dir")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=os.path.join(log_dir, cfg.get("filename", "homewatch.log")),
                maxBytes=int(cfg.get("max_bytes", 10_000_000)),
                backupCount=int(cfg.get("backup_count", 30)),
                encoding="utf-8",
            )
        )

    root = logging.getLogger()
    for old in list(root.handlers):
        if getattr(old, "_homewatch", False):
            root.removeHandler(old)
            old.close()
    for handler in handlers:
        handler.setFormatter(fmt)
        handler._homewatch = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)

    # APScheduler logs every fire at INFO and every overlapping fire at
    # WARNING; the worker counts skipped fires itself.
    if level > logging.DEBUG:
        logging.getLogger("apscheduler").setLevel(logging.WARNING)
        logging.getLogger("apscheduler.scheduler").setLevel(logging.ERROR)
    else:
        logging.getLogger("apscheduler").setLevel(logging.NOTSET)
        logging.getLogger("apscheduler.scheduler").setLevel(logging.NOTSET)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    return logging.getLogger("homewatch")
