"""Track file loading.

Reads a delimited location log from disk and builds a `LocationTrack`.
Rows missing any of the six fields, or carrying non-numeric values, are
dropped without logging each one.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from core.errors import ParseError
from core.services.delimited_parser import parse_named
from core.services.track_service import LocationTrack


@dataclass
class TrackLoadReport:
    """Counts observed while loading a track file."""

    rows_read: int
    samples_loaded: int


class CsvTrackRepository:
    """Load location tracks from delimited text files."""

    def __init__(self, delimiter: str | None = None) -> None:
        """Create a repository; `delimiter=None` guesses it per file."""
        self._delimiter = delimiter or None

    def read_text(self, csv_path: str) -> str:
        """Return file content decoded as UTF-8 (BOM tolerated).

        Raises:
            ParseError: The file cannot be read or decoded.
        """
        path = Path(csv_path)
        try:
            return path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as ex:
            raise ParseError(f"unable to read {path}: {ex}") from ex

    def load(self, csv_path: str) -> tuple[LocationTrack, TrackLoadReport]:
        """Parse `csv_path` into a sorted track plus load counts.

        Raises:
            ParseError: Unreadable file or malformed quoting.
        """
        table = parse_named(self.read_text(csv_path), delimiter=self._delimiter)
        track = LocationTrack.from_rows(table.rows)
        report = TrackLoadReport(rows_read=len(table.rows), samples_loaded=len(track))
        logger.info(
            "Track {}: {} rows, {} usable samples",
            csv_path,
            report.rows_read,
            report.samples_loaded,
        )
        return track, report
