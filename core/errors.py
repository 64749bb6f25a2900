"""Exception hierarchy for track loading, matching and geotag writing.

Batch-level errors end a run early; item-level errors are caught by the
orchestrator and turned into `[E]` log lines.
"""

from __future__ import annotations


class GeotagError(Exception):
    """Base class for all errors raised by this project."""


class ParseError(GeotagError):
    """Track file unreadable or malformed at the character level."""

    def __init__(self, message: str, row: int | None = None) -> None:
        if row is not None:
            message = f"{message} (row {row})"
        super().__init__(message)
        self.row = row


class QuotationError(ParseError):
    """A quote appeared where only a quote, delimiter or newline is valid."""


class GenericError(ParseError):
    """Unterminated construct, e.g. a quoted field running to end of input."""


class NoRecordsError(GeotagError):
    """Track parsed but no row carried all six numeric fields."""


class NoCandidatesError(GeotagError):
    """Photo source yielded no file with a supported extension."""


class TimestampUnavailable(GeotagError):
    """No capture time could be resolved for an image."""


class NoMatchError(GeotagError):
    """No location sample could be resolved for a capture time."""


class MetadataLoadError(GeotagError):
    """Image metadata container could not be parsed."""


class MetadataWriteError(GeotagError):
    """New metadata could not be encoded."""


class FinalizeError(GeotagError):
    """Container with the new metadata could not be assembled."""


class FileReplaceError(GeotagError):
    """Atomic replace of the original file or attribute restore failed."""
