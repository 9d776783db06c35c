"""Centralized logging helpers.

Provides a single ``configure_logging`` entry point plus the small helpers the
rest of the codebase uses to emit structured DEBUG traces without paying the
formatting cost when DEBUG is off.
"""
from __future__ import annotations

import logging
import os
import sys
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

# LogRecord attribute that carries structured fields; namespaced so callers can
# use keys like "name" or "args" without colliding with LogRecord internals.
CONTEXT_ATTR = "dotdeps_context"


class ContextFormatter(logging.Formatter):
    """Formatter that appends structured context fields at DEBUG level."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = getattr(record, CONTEXT_ATTR, None)
        if fields and record.levelno <= logging.DEBUG:
            rendered = " ".join(f"{key}={value}" for key, value in fields.items())
            return f"{base} [{rendered}]"
        return base


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: Optional[str] = None, logfile: Optional[str] = None) -> None:
    """Configure the root logger.

    Args:
        level: Level name; falls back to $DOTDEPS_LOG_LEVEL and then INFO.
        logfile: Optional path; when given, logs go to the file instead of stderr.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if logfile:
        handler: logging.Handler = logging.FileHandler(logfile, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextFormatter(Constants.LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))


def extra_context(**fields: Any) -> Dict[str, Dict[str, Any]]:
    """Build the ``extra`` mapping for a structured log call, dropping None values."""
    return {CONTEXT_ATTR: {key: value for key, value in fields.items() if value is not None}}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from ``logger`` would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: Optional[str]) -> Optional[str]:
    """Strip credentials and query strings from a URL before logging it."""
    if not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "***@" + netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 2)
