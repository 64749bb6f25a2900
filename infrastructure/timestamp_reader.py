"""Capture-time extraction from image metadata with filesystem fallback."""

from __future__ import annotations

from typing import Any

from loguru import logger
from PIL.ExifTags import Base

from core.errors import MetadataLoadError
from infrastructure.metadata import read_exif_dict
from infrastructure.utils import first_present, get_filesystem_time, parse_capture_time

# Priority order: original capture, digitized, generic modification.
DATE_TAGS = (
    ("Exif", Base.DateTimeOriginal),
    ("Exif", Base.DateTimeDigitized),
    ("0th", Base.DateTime),
)
SUBSEC_TAGS = (
    ("Exif", Base.SubsecTimeOriginal),
    ("Exif", Base.SubsecTimeDigitized),
    ("Exif", Base.SubsecTime),
)
OFFSET_TAGS = (
    ("Exif", Base.OffsetTimeOriginal),
    ("Exif", Base.OffsetTimeDigitized),
    ("Exif", Base.OffsetTime),
)


def _collect(tags: dict[str, dict[int, Any]], keys: tuple[tuple[str, int], ...]) -> str | None:
    return first_present(tags.get(ifd, {}).get(tag) for ifd, tag in keys)


def timestamp_from_tags(tags: dict[str, dict[int, Any]]) -> float | None:
    """Resolve epoch seconds from tag dictionaries; None when no date parses."""
    raw_date = _collect(tags, DATE_TAGS)
    if raw_date is None:
        return None
    subsec = _collect(tags, SUBSEC_TAGS)
    offset = _collect(tags, OFFSET_TAGS)
    return parse_capture_time(raw_date, subsec, offset)


def timestamp_from_bytes(data: bytes, exiftool: str = "exiftool") -> float | None:
    """Capture time embedded in image bytes, without any fallback."""
    try:
        tags = read_exif_dict(data, exiftool=exiftool)
    except MetadataLoadError as ex:
        logger.debug("EXIF read failed: {}", ex)
        return None
    return timestamp_from_tags(tags)


def extract_timestamp(path: str, exiftool: str = "exiftool") -> float | None:
    """Capture time of the image at `path`.

    Falls back to file creation time, then modification time, when the
    metadata has no parseable date.
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as ex:
        logger.debug("read failed for {}: {}", path, ex)
        data = b""
    ts = timestamp_from_bytes(data, exiftool=exiftool) if data else None
    if ts is not None:
        return ts
    return get_filesystem_time(path)
