# src/config/logging_config.py

"""Logging for one aggregator run.

``setup_logging()`` attaches two handlers to the ``aggregator`` logger:

* a DEBUG file handler writing ``logs/run_<timestamp>.log``.  Admission
  denials, breaker transitions, cache hits and degraded-mode switches
  from every ``aggregator.*`` child land here in call order;
* a stderr handler, WARNING by default, so CLI output on stdout stays
  machine-readable.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

ROOT_LOGGER_NAME = "aggregator"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | "
    "%(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _run_log_path(logs_dir: Path) -> Path:
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return logs_dir / f"run_{stamp}.log"


def _handler(
    handler: logging.Handler, level: int, fmt: str
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_DATE_FORMAT))
    return handler


def setup_logging(console_level: int = logging.WARNING) -> Path:
    """Configure the ``aggregator`` logger and return this run's log path.

    Safe to call more than once; later calls leave the existing handlers
    in place.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = _run_log_path(logs_dir)

    aggregator_logger = logging.getLogger(ROOT_LOGGER_NAME)
    aggregator_logger.setLevel(logging.DEBUG)
    if aggregator_logger.handlers:
        return log_file

    aggregator_logger.addHandler(
        _handler(
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.DEBUG,
            _FILE_FORMAT,
        )
    )
    aggregator_logger.addHandler(
        _handler(
            logging.StreamHandler(sys.stderr), console_level, _CONSOLE_FORMAT
        )
    )
    aggregator_logger.debug("Run log opened at %s", log_file)
    return log_file
