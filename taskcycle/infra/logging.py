from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from taskcycle.config import PROJECT_ROOT, Settings

LOG_FILE_NAME = "taskcycle.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
# Libraries that log every job run at INFO.
QUIET_LOGGERS = ("apscheduler",)


def _log_path(settings: Settings) -> Path:
    log_dir = Path(settings.log_dir)
    if not log_dir.is_absolute():
        log_dir = PROJECT_ROOT / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / LOG_FILE_NAME


def setup_logging(settings: Settings) -> Path:
    log_file = _log_path(settings)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers: list[logging.Handler] = [
        RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8"),
        logging.StreamHandler(sys.stderr),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=settings.log_level.upper(), handlers=handlers)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file
