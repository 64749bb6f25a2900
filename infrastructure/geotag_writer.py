"""Geotag writer: inject GPS tags and replace the original file atomically.

For file-backed images the new bytes go to a hidden sibling temp file which
is renamed over the original, so the original is never seen truncated. File
mode and access/modification times are restored afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import stat
import tempfile

from loguru import logger

from core.errors import FileReplaceError, MetadataLoadError
from core.models import GeotagRequest, GpsTags, WriteOutcome, WriteResult
from infrastructure.metadata import open_container


@dataclass(frozen=True)
class FileAttributes:
    """File mode plus access/modification times in nanoseconds."""

    mode: int
    atime_ns: int
    mtime_ns: int


def snapshot_attributes(path: str) -> FileAttributes:
    """Mode and access/modification times of `path`."""
    st = os.stat(path)
    return FileAttributes(
        mode=stat.S_IMODE(st.st_mode), atime_ns=st.st_atime_ns, mtime_ns=st.st_mtime_ns
    )


def _restore_attributes(path: str, attrs: FileAttributes) -> None:
    os.chmod(path, attrs.mode)
    os.utime(path, ns=(attrs.atime_ns, attrs.mtime_ns))


def atomic_replace(path: str, data: bytes, attrs: FileAttributes | None = None) -> None:
    """Replace the file at `path` with `data`, keeping its mode and times.

    `attrs` is the attribute snapshot to reapply; taken from `path` when None.

    Raises:
        FileReplaceError: Any I/O step failed. The original is either intact
            or fully replaced.
    """
    if attrs is None:
        try:
            attrs = snapshot_attributes(path)
        except OSError as ex:
            raise FileReplaceError(f"unable to read file attributes: {ex}") from ex

    parent = str(Path(path).parent)
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=parent)
    except OSError as ex:
        raise FileReplaceError(f"unable to create temporary file: {ex}") from ex

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as ex:
        try:
            os.remove(tmp_path)
        except OSError as cleanup_ex:
            logger.warning("Leftover temp file {}: {}", tmp_path, cleanup_ex)
        raise FileReplaceError(f"failed to write: {ex}") from ex

    try:
        _restore_attributes(path, attrs)
    except OSError as ex:
        raise FileReplaceError(f"unable to restore file attributes: {ex}") from ex


class GeotagWriter:
    """Writes GPS tags into images, skipping ones that already have them."""

    def __init__(self, exiftool: str = "exiftool") -> None:
        self._exiftool = exiftool

    @property
    def exiftool(self) -> str:
        """exiftool executable used for HEIF files."""
        return self._exiftool

    def encode(self, data: bytes, gps: GpsTags, overwrite: bool) -> bytes | None:
        """Return new image bytes, or None when existing GPS must be kept.

        Raises:
            MetadataLoadError, MetadataWriteError, FinalizeError
        """
        container = open_container(data, exiftool=self._exiftool)
        if container.has_location() and not overwrite:
            return None
        container.write_tags(gps)
        return container.reencode()

    def write(self, request: GeotagRequest) -> WriteResult:
        """Geotag `request.image` with `request.sample`.

        File-backed images are replaced on disk; in-memory images get their
        new bytes returned in the result.
        """
        image = request.image
        gps = GpsTags.from_sample(request.sample)

        attrs: FileAttributes | None = None
        if image.is_file:
            try:
                # before the read, which may touch atime
                attrs = snapshot_attributes(image.path)
                with open(image.path, "rb") as f:
                    data = f.read()
            except OSError as ex:
                raise MetadataLoadError(f"unable to load image: {ex}") from ex
        elif image.data is not None:
            data = image.data
        else:
            raise MetadataLoadError("image reference carries neither path nor data")

        new_data = self.encode(data, gps, request.overwrite)
        if new_data is None:
            logger.info("GPS already present, kept: {}", image.display_name)
            return WriteResult(WriteOutcome.SKIPPED)

        if image.is_file:
            atomic_replace(image.path, new_data, attrs)
            logger.debug("Replaced {} ({} bytes)", image.path, len(new_data))
            return WriteResult(WriteOutcome.WRITTEN)
        return WriteResult(WriteOutcome.WRITTEN, data=new_data)
