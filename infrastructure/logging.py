"""Logging initialization utilities using loguru."""

from __future__ import annotations

import os
from pathlib import Path
import sys

from loguru import logger

APP_DIR_NAME = "PhotoGeotagger"


def get_log_directory() -> str:
    """Get the main log directory path."""
    if os.name == "nt":
        base = Path(os.path.expandvars("%LOCALAPPDATA%"))
    else:
        base = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
    return str(base / APP_DIR_NAME / "logs")


def init_logging(log_dir: str | None = None, level: str = "INFO", console: bool = False) -> None:
    """Initialize rotating file logging under the given directory.

    With `console` set, warnings and errors are also echoed to stderr.
    """
    if log_dir is None:
        log_dir = get_log_directory()
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        str(log_path / "geotag_{time:YYYYMMDD}.log"),
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )
    if console:
        logger.add(sys.stderr, level="WARNING", format="{level}: {message}")


def find_latest_log_file(log_dir: str | None = None) -> Path | None:
    """Find the latest log file in the specified directory."""
    if log_dir is None:
        log_dir = get_log_directory()

    try:
        log_path = Path(log_dir)
        if not log_path.exists():
            return None

        log_files = list(log_path.glob("geotag_*.log"))
        if not log_files:
            return None

        # Return the most recently modified file
        return max(log_files, key=lambda p: p.stat().st_mtime)
    except (OSError, ValueError):
        return None
