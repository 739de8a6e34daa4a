"""Utility functions for the capture tool."""
from __future__ import annotations

import json
import logging
import os
import re
import time
from datetime import datetime, timezone
from typing import Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

WORKING_DIRECTORY_NAME = "mcp-shark"
DATABASE_NAME = "mcp-shark.sqlite"

DEFAULT_HOME = os.environ.get("CAPTURE_HOME", "").strip() or os.path.join("~", WORKING_DIRECTORY_NAME)
DEFAULT_DB = os.environ.get("CAPTURE_DB", "").strip()
DEFAULT_LOG_LEVEL = os.environ.get("CAPTURE_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LONE_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")

# Monotonic clock pinned to the epoch once per process.
_CLOCK_ANCHOR_NS = time.time_ns() - time.monotonic_ns()


def monotonic_ns() -> int:
    """High-resolution capture time in nanoseconds, monotonic within a process."""
    return _CLOCK_ANCHOR_NS + time.monotonic_ns()


def utc_now() -> str:
    """Get current UTC wall-clock time in ISO format."""
    now = datetime.now(timezone.utc)
    return now.strftime(ISO_FORMAT)[:-4] + "Z"


def duration_ms(start_ns: int, end_ns: int) -> float:
    """Elapsed milliseconds between two nanosecond timestamps."""
    return (end_ns - start_ns) / 1_000_000


def escape_surrogates(text: str) -> str:
    """Replace unpaired surrogates with `\\uXXXX` escapes so the text encodes as UTF-8."""
    return _LONE_SURROGATE_RE.sub(lambda match: f"\\u{ord(match.group()):04x}", text)


def dump_json(value: object) -> str:
    """Serialize to compact JSON, the way browsers and Node print payloads.

    Lone surrogates come out as `\\udXXX` escapes, which keeps the document
    valid JSON and storable as UTF-8.
    """
    return escape_surrogates(json.dumps(value, ensure_ascii=False, separators=(",", ":")))


def get_working_directory() -> str:
    return os.path.expanduser(DEFAULT_HOME)


def get_database_path() -> str:
    return os.path.join(get_working_directory(), "db")


def get_database_file() -> str:
    return os.path.join(get_database_path(), DATABASE_NAME)


def resolve_db_path(explicit_db: Optional[str] = None) -> str:
    """Resolve database path from an explicit path, the environment, or the default home."""
    if explicit_db:
        return os.path.expanduser(explicit_db)
    if DEFAULT_DB:
        return os.path.expanduser(DEFAULT_DB)
    return get_database_file()


def prepare_app_data_spaces() -> str:
    """Create the working and database directories; return the database file path."""
    os.makedirs(get_database_path(), exist_ok=True)
    return get_database_file()


def setup_logging(level: int | str = DEFAULT_LOG_LEVEL, name: str = "capture_tool") -> logging.Logger:
    """Configure the package logger with a single stream handler.

    Args:
        level: Logging level, as a number or a name such as "INFO"
        name: Logger name (default: "capture_tool")

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level '{level}'")
        level = resolved
    logger = logging.getLogger(name)
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
