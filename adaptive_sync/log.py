"""Logging configuration and JSON decision lines for the sync package."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any, Optional

DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SENSITIVE_PATTERNS = [
    (re.compile(r"(SESSDATA|sessionid|token|auth)=[^;\s]+", re.IGNORECASE), r"\1=[REDACTED]"),
    (re.compile(r"Bearer [a-zA-Z0-9._-]+"), "Bearer [REDACTED]"),
]


def setup_logging(
    level: Optional[str] = None,
    console: bool = True,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Log level name. Falls back to SYNC_LOG_LEVEL, then INFO.
        console: Whether to log to stderr.
        log_file: Optional path of an additional log file.

    Returns:
        The adaptive_sync root logger.
    """
    if level is None:
        level = os.environ.get("SYNC_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger("adaptive_sync")
    logger.setLevel(log_level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    if console:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a single-line JSON decision log."""
    if not logger.isEnabledFor(level):
        return
    record = {"timestamp": time.time(), "event": event, **fields}
    logger.log(level, json.dumps(record, ensure_ascii=False, default=str))


def sanitize_for_log(text: str) -> str:
    """Mask cookie and token values before they reach a log line."""
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result
