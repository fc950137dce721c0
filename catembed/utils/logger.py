"""Centralized logging configuration for encoding runs."""

import logging
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime, timezone
from typing import Iterator, Optional
from contextvars import ContextVar

from catembed.utils.config import RuntimeSettings

# Column currently being encoded (thread/task local)
column_var: ContextVar[str] = ContextVar("column", default="-")

# Unique ID for this process (set once at import)
RUN_ID: str = uuid.uuid4().hex[:8]
RUN_START_TIME: datetime = datetime.now(timezone.utc)

# Logger cache
_LOGGERS = {}


class UTCFormatter(logging.Formatter):
    """Formatter that always uses UTC timezone."""

    converter = lambda *args: datetime.now(timezone.utc).timetuple()

    def format(self, record):
        record.column = column_var.get()
        return super().format(record)


def get_run_id() -> str:
    """Get the current run ID."""
    return RUN_ID


@contextmanager
def column_context(column: str) -> Iterator[str]:
    """Tag every log line emitted inside the block with ``column``."""
    token = column_var.set(str(column))
    try:
        yield column
    finally:
        column_var.reset(token)


def log_session_start(logger: logging.Logger):
    """Log a clear session start banner."""
    banner = "=" * 80
    logger.info(banner)
    logger.info(f"SESSION START | Run ID: {get_run_id()}")
    logger.info(banner)


def log_session_end(logger: logging.Logger):
    """Log a clear session end banner."""
    duration = datetime.now(timezone.utc) - RUN_START_TIME
    minutes, seconds = divmod(int(duration.total_seconds()), 60)
    hours, minutes = divmod(minutes, 60)

    if hours > 0:
        duration_str = f"{hours}h {minutes}m {seconds}s"
    elif minutes > 0:
        duration_str = f"{minutes}m {seconds}s"
    else:
        duration_str = f"{seconds}s"

    banner = "=" * 80
    logger.info(banner)
    logger.info(f"SESSION END | Run ID: {get_run_id()} | Duration: {duration_str}")
    logger.info(banner)


def get_logger(
    name: str,
    level: Optional[int] = None,
    log_dir: Optional[Path] = None
) -> logging.Logger:
    """
    Get or create configured logger.

    Level and directory default to ``RuntimeSettings`` (``CATEMBED_LOG_LEVEL``,
    ``CATEMBED_LOG_DIR``). Each line carries the column being encoded.
    """

    if name in _LOGGERS:
        return _LOGGERS[name]

    settings = RuntimeSettings()
    if level is None:
        level = logging.getLevelName(settings.log_level.upper())
    if log_dir is None:
        log_dir = settings.log_dir

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    # Format: timestamp | level | module | [column] | message
    log_format = (
        "%(asctime)s UTC | "
        "%(levelname)-8s | "
        "%(name)-30s | "
        "[%(column)s] | "
        "%(message)s"
    )

    formatter = UTCFormatter(
        fmt=log_format,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.log_to_file:
        log_dir.mkdir(parents=True, exist_ok=True)

        module_name = name.split(".")[-1]
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = log_dir / f"{module_name}_{date_str}.log"

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _LOGGERS[name] = logger
    return logger
