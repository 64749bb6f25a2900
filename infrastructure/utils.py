"""Utilities for capture-time parsing (EXIF strings and filesystem times).

This module centralizes date parsing so the timestamp reader and tests share
one behavior. It uses best-effort parsing and will not raise on errors;
callers should expect `None` when data is not available.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
import os

from loguru import logger

# Tried in order; first successful parse wins.
EXIF_DT_FORMATS = (
    "%Y:%m:%d %H:%M:%S.%f %z",
    "%Y:%m:%d %H:%M:%S.%f",
    "%Y:%m:%d %H:%M:%S %z",
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f %z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S %z",
    "%Y-%m-%dT%H:%M:%S",
)

# strptime's %f accepts at most microseconds.
_MAX_SUBSEC_DIGITS = 6


def clean_tag_text(value: object) -> str | None:
    """Decode a raw tag value into stripped text; None when empty."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    text = str(value).strip("\x00").strip()
    return text or None


def first_present(values: Iterable[object]) -> str | None:
    """Return the first value that cleans to non-empty text."""
    for value in values:
        text = clean_tag_text(value)
        if text is not None:
            return text
    return None


def compose_date_candidates(raw_date: str, subsec: str | None, offset: str | None) -> list[str]:
    """Build composite date strings in preference order.

    With a sub-second value: "<date>.<subsec> <offset>" then "<date>.<subsec>".
    Without: "<date> <offset>" then "<date>". Offset variants are only
    produced when the offset is non-empty.
    """
    candidates: list[str] = []
    if subsec:
        subsec = subsec[:_MAX_SUBSEC_DIGITS]
        if offset:
            candidates.append(f"{raw_date}.{subsec} {offset}")
        candidates.append(f"{raw_date}.{subsec}")
    else:
        if offset:
            candidates.append(f"{raw_date} {offset}")
        candidates.append(raw_date)
    return candidates


def parse_exif_datetime(value: str) -> datetime | None:
    """Parse one composite date string against `EXIF_DT_FORMATS`."""
    for fmt in EXIF_DT_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def parse_capture_time(raw_date: str, subsec: str | None, offset: str | None) -> float | None:
    """Return epoch seconds for an EXIF date triple, or None if nothing parses.

    Values without a UTC offset are taken as local time.
    """
    for candidate in compose_date_candidates(raw_date, subsec, offset):
        dt = parse_exif_datetime(candidate)
        if dt is not None:
            try:
                return dt.timestamp()
            except (OverflowError, OSError, ValueError) as ex:
                logger.debug("timestamp conversion failed for {}: {}", candidate, ex)
    return None


def get_filesystem_creation_time(path: str) -> float | None:
    """Best-effort file creation time in epoch seconds.

    Uses `st_birthtime` where the platform records it; None otherwise.
    """
    try:
        st = os.stat(path)
    except OSError as ex:
        logger.debug("stat failed for {}: {}", path, ex)
        return None
    birth = getattr(st, "st_birthtime", None)
    return float(birth) if birth else None


def get_filesystem_modified_time(path: str) -> float | None:
    """File modification time in epoch seconds; None if the file is unreadable."""
    try:
        return os.path.getmtime(path)
    except OSError as ex:
        logger.debug("getmtime failed for {}: {}", path, ex)
        return None


def get_filesystem_time(path: str) -> float | None:
    """Creation time, falling back to modification time."""
    created = get_filesystem_creation_time(path)
    if created is not None:
        return created
    return get_filesystem_modified_time(path)
