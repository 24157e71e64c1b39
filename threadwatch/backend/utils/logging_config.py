"""Logging Configuration for threadwatch

This module provides centralized logging configuration using structlog with JSON
output. Every component logs snake_case events with key/value context, e.g.
``logger.info("thread_inserted", link=..., domain=...)``.

Usage:
    >>> from threadwatch.backend.utils.logging_config import setup_logging
    >>> setup_logging()
    >>> import structlog
    >>> logger = structlog.get_logger()
    >>> logger.info("cycle_started", extra_urls=2, feeds=3)
    >>> logger.error("store_unavailable", exc_info=True, db_path="data/forum_monitor.db")
"""

import logging
import sys
from pathlib import Path
from typing import Union

import structlog


def setup_logging(
    log_dir: str = "logs",
    log_filename: str = "threadwatch.log",
    level: Union[int, str] = logging.INFO,
) -> None:
    """Configure structlog with JSON renderer and file output.

    Sets up both Python stdlib logging and structlog to write JSON-formatted
    log entries to ``<log_dir>/<log_filename>`` and to stdout. Creates the log
    directory if it doesn't exist.

    Args:
        log_dir: Directory for log files, relative to current working directory (default: "logs")
        log_filename: Name of the log file (default: "threadwatch.log")
        level: Minimum level written to the console (default: INFO). The
            file handler always receives DEBUG and above.

    Log entry format (JSON):
        {
            "event": "comment_page_fetch_failed",
            "level": "warning",
            "timestamp": "2026-02-10T12:34:56.789Z",
            "logger": "threadwatch.monitor",
            ...additional context fields...
        }
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / log_filename

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # The formatter applies the final JSON rendering for both structlog and
    # foreign (stdlib) records such as uvicorn's
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared_processors,
    )

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Reduce noise from HTTP libraries
    for noisy in ("urllib3", "httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = None):
    """Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__). If None, returns root logger.

    Returns:
        Configured structlog logger ready for use (BoundLoggerLazyProxy)
    """
    return structlog.get_logger(name)
