"""Logging setup for Enrollment Manager.

Everything under the ``enrollment_manager`` logger goes to a rotating file
(and the console when asked). Student contact details are masked by a filter
on each handler, so call sites can log emails and phone numbers freely.
"""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_FILE = "enrollment.log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER = "enrollment_manager"

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")

_REDACTIONS = [
    (re.compile(r"Bearer [a-zA-Z0-9._-]+"), "Bearer [REDACTED]"),
    (re.compile(r"token=[a-zA-Z0-9._-]+"), "token=[REDACTED]"),
    (re.compile(r"([a-zA-Z0-9])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"), r"\1***@\2"),
    # Phone numbers keep their last two digits; "+" or a leading 0 marks them,
    # and digits glued to an identifier (uuid segments, hex ids) are left alone
    (re.compile(r"(?<![\w-])(?:\+\d|0)[\d ]{6,}(\d{2})(?![\w-])"), r"***\1"),
]


def sanitize_for_log(text: str) -> str:
    """Mask emails, phone numbers and credentials in a piece of text."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class PersonalDataFilter(logging.Filter):
    """Rewrites each record's message through :func:`sanitize_for_log`."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = sanitize_for_log(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(PersonalDataFilter())
    return handler


def setup_logging(
    log_dir: str | Path | None = None,
    log_file: str = DEFAULT_LOG_FILE,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    level: str | None = None,
    console: bool = True,
) -> logging.Logger:
    """Configure the package logger. Safe to call more than once.

    Args:
        log_dir: Directory for log files. Falls back to ENROLLMENT_LOG_DIR,
            then 'logs'.
        log_file: Log file name.
        max_bytes: Size at which the file rotates.
        backup_count: Rotated files to keep.
        level: DEBUG, INFO, WARNING or ERROR. Falls back to
            ENROLLMENT_LOG_LEVEL, then INFO.
        console: Also log to stderr.

    Returns:
        The ``enrollment_manager`` logger.
    """
    log_dir = Path(log_dir or os.environ.get("ENROLLMENT_LOG_DIR", DEFAULT_LOG_DIR))
    log_dir.mkdir(parents=True, exist_ok=True)
    level = level or os.environ.get("ENROLLMENT_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)
    for existing in list(logger.handlers):
        existing.close()
    logger.handlers.clear()

    log_path = log_dir / log_file
    logger.addHandler(
        _handler(
            RotatingFileHandler(
                log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            ),
            log_level,
        )
    )
    if console:
        logger.addHandler(_handler(logging.StreamHandler(), log_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logger.info("Enrollment Manager logging initialized (level=%s, file=%s)", level, log_path)
    return logger
