"""Metadata containers for JPEG and HEIC/HEIF images.

JPEG tags are read with Pillow and rewritten with piexif, which swaps the
APP1 segment and copies every other segment byte for byte. HEIF tags are
read and rewritten by exiftool, which edits the `Exif` item and leaves the
coded image items alone.
"""

from __future__ import annotations

import io
from pathlib import Path
import struct
import subprocess
import tempfile
from typing import Any

from loguru import logger
import piexif
from PIL import ExifTags, Image, UnidentifiedImageError

from core.errors import FinalizeError, GeotagError, MetadataLoadError, MetadataWriteError
from core.models import GpsTags
from core.services.interfaces import IMetadataContainer

JPEG_SUFFIXES = frozenset({".jpg", ".jpeg"})
HEIF_SUFFIXES = frozenset({".heic", ".heif"})
SUPPORTED_SUFFIXES = JPEG_SUFFIXES | HEIF_SUFFIXES

_HEIF_BRANDS = {b"heic", b"heix", b"heim", b"heis", b"hevc", b"hevx", b"mif1", b"msf1", b"heif"}

# Rational denominators used when encoding.
_SECONDS_SCALE = 10000
_ALTITUDE_SCALE = 100

EXIFTOOL_TIMEOUT_SECONDS = 120

_TAG_IFDS = ("0th", "Exif", "GPS")

# piexif reports malformed segments through plain struct and lookup errors
_EXIF_PARSE_ERRORS = (
    piexif.InvalidImageDataError,
    OSError,
    ValueError,
    struct.error,
    KeyError,
    IndexError,
)


def detect_format(data: bytes) -> str | None:
    """Return "jpeg", "heif" or None from the leading bytes."""
    if data[:2] == b"\xff\xd8":
        return "jpeg"
    if len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in _HEIF_BRANDS:
        return "heif"
    return None


def to_dms_rationals(value: float) -> tuple[tuple[int, int], ...]:
    """Encode `abs(value)` degrees as EXIF degree/minute/second rationals."""
    total = round(abs(value) * 3600 * _SECONDS_SCALE)
    degrees, rest = divmod(total, 3600 * _SECONDS_SCALE)
    minutes, seconds = divmod(rest, 60 * _SECONDS_SCALE)
    return ((degrees, 1), (minutes, 1), (seconds, _SECONDS_SCALE))


def _rational_to_float(value: Any) -> float:
    # piexif yields (num, den) tuples; Pillow yields IFDRational
    if isinstance(value, tuple) and len(value) == 2:
        num, den = value
        return float(num) / float(den) if den else 0.0
    return float(value)


def dms_to_degrees(value: Any) -> float:
    """Decode a degree/minute/second triple into decimal degrees."""
    parts = [_rational_to_float(v) for v in value]
    while len(parts) < 3:
        parts.append(0.0)
    return parts[0] + parts[1] / 60.0 + parts[2] / 3600.0


def _ref_text(value: Any) -> str:
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    return str(value).strip("\x00").strip().upper()


def gps_position(gps: dict[int, Any]) -> tuple[float, float, float | None] | None:
    """Return signed `(latitude, longitude, altitude)` from a GPS tag dict.

    Altitude is None when the tag is absent.
    """
    if piexif.GPSIFD.GPSLatitude not in gps or piexif.GPSIFD.GPSLongitude not in gps:
        return None
    lat = dms_to_degrees(gps[piexif.GPSIFD.GPSLatitude])
    lon = dms_to_degrees(gps[piexif.GPSIFD.GPSLongitude])
    if _ref_text(gps.get(piexif.GPSIFD.GPSLatitudeRef, "N")) == "S":
        lat = -lat
    if _ref_text(gps.get(piexif.GPSIFD.GPSLongitudeRef, "E")) == "W":
        lon = -lon
    alt: float | None = None
    if piexif.GPSIFD.GPSAltitude in gps:
        alt = _rational_to_float(gps[piexif.GPSIFD.GPSAltitude])
        ref = gps.get(piexif.GPSIFD.GPSAltitudeRef, 0)
        if isinstance(ref, bytes):
            ref = ref[0] if ref else 0
        if ref == 1:
            alt = -alt
    return lat, lon, alt


def _has_location_tags(gps: dict[int, Any]) -> bool:
    return piexif.GPSIFD.GPSLatitude in gps or piexif.GPSIFD.GPSLongitude in gps


def _run_exiftool(cmd: list[str], error: type[GeotagError]) -> bytes:
    logger.debug("Running {}", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd, capture_output=True, check=True, timeout=EXIFTOOL_TIMEOUT_SECONDS
        )
    except FileNotFoundError as ex:
        raise error(f"exiftool not found: {cmd[0]}") from ex
    except subprocess.CalledProcessError as ex:
        stderr = (ex.stderr or b"").decode("utf-8", errors="replace").strip()
        raise error(f"exiftool failed: {stderr}") from ex
    except subprocess.TimeoutExpired as ex:
        raise error("exiftool timed out") from ex
    return proc.stdout


def _load_piexif_tags(data: bytes) -> dict[str, dict[int, Any]]:
    try:
        exif = piexif.load(data)
    except _EXIF_PARSE_ERRORS as ex:
        raise MetadataLoadError(f"unable to parse EXIF: {ex}") from ex
    return {name: dict(exif.get(name) or {}) for name in _TAG_IFDS}


def read_jpeg_tags(data: bytes) -> dict[str, dict[int, Any]]:
    """Read IFD0, Exif and GPS tag dictionaries of a JPEG with Pillow.

    Frames too large for Pillow's pixel limit are read with piexif, which
    only parses the APP1 segment.

    Raises:
        MetadataLoadError: The bytes are not an image Pillow can open.
    """
    try:
        with Image.open(io.BytesIO(data)) as im:
            exif = im.getexif()
            return {
                "0th": dict(exif),
                "Exif": dict(exif.get_ifd(ExifTags.IFD.Exif)),
                "GPS": dict(exif.get_ifd(ExifTags.IFD.GPSInfo)),
            }
    except Image.DecompressionBombError as ex:
        logger.debug("Reading tags with piexif: {}", ex)
        return _load_piexif_tags(data)
    except (UnidentifiedImageError, OSError, ValueError, struct.error, SyntaxError) as ex:
        raise MetadataLoadError(f"unable to read image metadata: {ex}") from ex


def read_heif_tags(data: bytes, exiftool: str = "exiftool") -> dict[str, dict[int, Any]]:
    """Read tag dictionaries of a HEIC/HEIF file.

    exiftool extracts the raw EXIF block, which piexif then decodes.

    Raises:
        MetadataLoadError: exiftool is missing or rejects the file.
    """
    with tempfile.TemporaryDirectory(prefix="geotag_") as tmp:
        src = Path(tmp) / "source.heic"
        src.write_bytes(data)
        blob = _run_exiftool([exiftool, "-q", "-q", "-b", "-EXIF", str(src)], MetadataLoadError)
    if not blob:
        return {name: {} for name in _TAG_IFDS}
    return _load_piexif_tags(blob)


def read_exif_dict(data: bytes, exiftool: str = "exiftool") -> dict[str, dict[int, Any]]:
    """Tag dictionaries for JPEG or HEIF bytes.

    Raises:
        MetadataLoadError: Unknown format or unreadable metadata.
    """
    kind = detect_format(data)
    if kind == "jpeg":
        return read_jpeg_tags(data)
    if kind == "heif":
        return read_heif_tags(data, exiftool=exiftool)
    raise MetadataLoadError("unsupported image format")


class JpegContainer(IMetadataContainer):
    """EXIF APP1 segment of a JPEG, edited with piexif."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        try:
            self._exif = piexif.load(data)
        except _EXIF_PARSE_ERRORS as ex:
            raise MetadataLoadError(f"unable to parse EXIF: {ex}") from ex

    def has_location(self) -> bool:
        return _has_location_tags(self._exif["GPS"])

    def write_tags(self, gps: GpsTags) -> None:
        ifd = self._exif["GPS"]
        ifd.setdefault(piexif.GPSIFD.GPSVersionID, (2, 3, 0, 0))
        ifd[piexif.GPSIFD.GPSLatitudeRef] = gps.latitude_ref.encode("ascii")
        ifd[piexif.GPSIFD.GPSLatitude] = to_dms_rationals(gps.latitude)
        ifd[piexif.GPSIFD.GPSLongitudeRef] = gps.longitude_ref.encode("ascii")
        ifd[piexif.GPSIFD.GPSLongitude] = to_dms_rationals(gps.longitude)
        ifd[piexif.GPSIFD.GPSAltitudeRef] = 0 if gps.altitude >= 0 else 1
        ifd[piexif.GPSIFD.GPSAltitude] = (
            round(abs(gps.altitude) * _ALTITUDE_SCALE),
            _ALTITUDE_SCALE,
        )

    def reencode(self) -> bytes:
        try:
            exif_bytes = piexif.dump(self._exif)
        except (ValueError, TypeError, KeyError, struct.error) as ex:
            raise MetadataWriteError(f"unable to encode EXIF: {ex}") from ex
        out = io.BytesIO()
        try:
            piexif.insert(exif_bytes, self._data, out)
        except (ValueError, piexif.InvalidImageDataError, struct.error) as ex:
            raise FinalizeError(f"unable to rebuild JPEG: {ex}") from ex
        return out.getvalue()


class HeifContainer(IMetadataContainer):
    """EXIF item of a HEIC/HEIF file, read and written through exiftool."""

    def __init__(self, data: bytes, exiftool: str = "exiftool") -> None:
        self._data = data
        self._exiftool = exiftool
        self._tags = read_heif_tags(data, exiftool=exiftool)
        self._staged: GpsTags | None = None

    def has_location(self) -> bool:
        return _has_location_tags(self._tags["GPS"])

    def write_tags(self, gps: GpsTags) -> None:
        self._staged = gps

    def exiftool_args(self) -> list[str]:
        """Tag assignments passed to exiftool for the staged values."""
        gps = self._staged
        if gps is None:
            return []
        # -n: values are taken as plain numbers
        return [
            f"-GPSLatitudeRef={gps.latitude_ref}",
            f"-GPSLatitude={gps.latitude!r}",
            f"-GPSLongitudeRef={gps.longitude_ref}",
            f"-GPSLongitude={gps.longitude!r}",
            f"-GPSAltitudeRef={0 if gps.altitude >= 0 else 1}",
            f"-GPSAltitude={abs(gps.altitude)!r}",
        ]

    def reencode(self) -> bytes:
        if self._staged is None:
            return self._data
        with tempfile.TemporaryDirectory(prefix="geotag_") as tmp:
            src = Path(tmp) / "source.heic"
            dst = Path(tmp) / "result.heic"
            src.write_bytes(self._data)
            _run_exiftool(
                [self._exiftool, "-q", "-q", "-n", *self.exiftool_args(), "-o", str(dst), str(src)],
                FinalizeError,
            )
            try:
                return dst.read_bytes()
            except OSError as ex:
                raise FinalizeError(f"exiftool produced no output: {ex}") from ex


def open_container(data: bytes, exiftool: str = "exiftool") -> IMetadataContainer:
    """Return the container implementation matching the image bytes.

    Raises:
        MetadataLoadError: Unknown format or unreadable metadata.
    """
    kind = detect_format(data)
    if kind == "jpeg":
        return JpegContainer(data)
    if kind == "heif":
        return HeifContainer(data, exiftool=exiftool)
    raise MetadataLoadError("unsupported image format")
