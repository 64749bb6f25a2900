"""Shared fixtures: small JPEG files with EXIF blocks and track files."""

from __future__ import annotations

import io
import json
import os
from pathlib import Path
import sys

import piexif
from PIL import Image
import pytest

# 1970:01:01 00:16:40 UTC
EPOCH_1000 = "1970:01:01 00:16:40"

TOKYO_HEADER = "timestamp,longitude,latitude,altitude,heading,speed"
TOKYO_ROW = "1000,139.767125,35.681236,40.0,0,0"


def make_jpeg(
    date: str | None = EPOCH_1000,
    offset: str | None = "+00:00",
    subsec: str | None = None,
    gps: dict[int, object] | None = None,
    size: tuple[int, int] = (16, 16),
) -> bytes:
    """Return JPEG bytes carrying the given EXIF capture time and GPS tags."""
    exif_ifd: dict[int, object] = {}
    if date is not None:
        exif_ifd[piexif.ExifIFD.DateTimeOriginal] = date
    if offset is not None:
        exif_ifd[piexif.ExifIFD.OffsetTimeOriginal] = offset
    if subsec is not None:
        exif_ifd[piexif.ExifIFD.SubSecTimeOriginal] = subsec
    exif = {"0th": {}, "Exif": exif_ifd, "GPS": dict(gps or {}), "1st": {}, "thumbnail": None}

    buf = io.BytesIO()
    image = Image.new("RGB", size, (200, 40, 40))
    if exif_ifd or gps:
        image.save(buf, "JPEG", quality=90, exif=piexif.dump(exif))
    else:
        image.save(buf, "JPEG", quality=90)
    return buf.getvalue()


def gps_tags(lat: float, lon: float, alt: float) -> dict[int, object]:
    """GPS IFD with whole-degree coordinates, for 'already tagged' fixtures."""
    return {
        piexif.GPSIFD.GPSLatitudeRef: "N" if lat >= 0 else "S",
        piexif.GPSIFD.GPSLatitude: ((int(abs(lat)), 1), (0, 1), (0, 1)),
        piexif.GPSIFD.GPSLongitudeRef: "E" if lon >= 0 else "W",
        piexif.GPSIFD.GPSLongitude: ((int(abs(lon)), 1), (0, 1), (0, 1)),
        piexif.GPSIFD.GPSAltitudeRef: 0 if alt >= 0 else 1,
        piexif.GPSIFD.GPSAltitude: (int(abs(alt)), 1),
    }


def scan_data(data: bytes) -> bytes:
    """Bytes from the first SOS marker on: the entropy-coded image data."""
    return data[data.index(b"\xff\xda") :]


def set_frame_size(data: bytes, width: int, height: int) -> bytes:
    """Patch the SOF0 header so the JPEG declares `width` x `height` pixels."""
    pos = 2
    while data[pos + 1] != 0xC0:
        pos += 2 + int.from_bytes(data[pos + 2 : pos + 4], "big")
    # marker, length and sample precision come before the dimensions
    start = pos + 5
    return data[:start] + height.to_bytes(2, "big") + width.to_bytes(2, "big") + data[start + 4 :]


# ftyp box of a HEIC file; the fake exiftool serves whatever follows it as the EXIF block
HEIF_HEADER = b"\x00\x00\x00\x10ftypheic\x00\x00\x00\x00"


def make_heif(gps: dict[int, object] | None = None) -> bytes:
    """HEIF-branded bytes carrying an EXIF block captured at t=1000."""
    exif_ifd = {
        piexif.ExifIFD.DateTimeOriginal: EPOCH_1000,
        piexif.ExifIFD.OffsetTimeOriginal: "+00:00",
    }
    exif = {"0th": {}, "Exif": exif_ifd, "GPS": dict(gps or {}), "1st": {}, "thumbnail": None}
    # exiftool -b -EXIF prints the bare TIFF structure, without the "Exif\0\0" prefix
    return HEIF_HEADER + piexif.dump(exif)[6:]


FAKE_EXIFTOOL = """#!{python}
import json
import shutil
import sys

args = sys.argv[1:]
with open({calls!r}, "a", encoding="utf-8") as f:
    f.write(json.dumps(args) + "\\n")
if "-EXIF" in args:
    with open(args[-1], "rb") as f:
        sys.stdout.buffer.write(f.read()[{skip}:])
elif "-o" in args:
    shutil.copyfile(args[-1], args[args.index("-o") + 1])
"""


class FakeExiftool:
    """Stand-in exiftool on PATH that records its command lines."""

    def __init__(self, directory: Path) -> None:
        self.calls_file = directory / "calls.jsonl"
        self.script = directory / "exiftool"
        self.script.write_text(
            FAKE_EXIFTOOL.format(
                python=sys.executable, calls=str(self.calls_file), skip=len(HEIF_HEADER)
            ),
            encoding="utf-8",
        )
        self.script.chmod(0o755)

    def calls(self) -> list[list[str]]:
        """Argument lists of every invocation so far."""
        if not self.calls_file.exists():
            return []
        lines = self.calls_file.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines]


@pytest.fixture
def jpeg_file(tmp_path: Path) -> Path:
    """A JPEG without GPS captured at t=1000."""
    path = tmp_path / "photos" / "IMG_0001.jpg"
    path.parent.mkdir()
    path.write_bytes(make_jpeg())
    return path


@pytest.fixture
def tagged_jpeg_file(tmp_path: Path) -> Path:
    """A JPEG captured at t=1000 that already carries GPS 10N 20E 5m."""
    path = tmp_path / "tagged.jpg"
    path.write_bytes(make_jpeg(gps=gps_tags(10, 20, 5)))
    return path


@pytest.fixture
def track_file(tmp_path: Path) -> Path:
    """Single-row track at t=1000 near Tokyo station."""
    path = tmp_path / "track.csv"
    path.write_text(f"{TOKYO_HEADER}\n{TOKYO_ROW}\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_exiftool(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeExiftool:
    """Put a recording exiftool first on PATH."""
    if sys.platform == "win32":
        pytest.skip("shebang scripts need a POSIX platform")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    fake = FakeExiftool(bin_dir)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return fake
