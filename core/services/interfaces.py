"""Core service interfaces and shared data structures.

This module defines the batch result record and the interfaces the
orchestrator depends on: metadata containers, asset stores and progress
sinks. Concrete implementations live in the infrastructure and app layers.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.models import GpsTags


@dataclass
class BatchResult:
    """Aggregate counters of a batch run.

    Attributes:
        items_considered: Candidates the run looked at.
        items_succeeded: Images that received new GPS tags.
        items_failed: Images that could not be geotagged.
        items_skipped: Images left alone because they already had GPS tags.
        cancelled: Whether the run stopped early on request.
    """

    items_considered: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    items_skipped: int = 0
    cancelled: bool = False

    def summary(self) -> tuple[int, int]:
        """Return `(succeeded, failed)`."""
        return self.items_succeeded, self.items_failed


class IMetadataContainer:
    """Metadata container of a single image.

    Implementations parse the container once on construction and keep the
    original bytes so they can rebuild the file with new tags without
    touching coded pixel data.
    """

    def has_location(self) -> bool:
        """True when a GPS latitude or longitude tag is present."""
        raise NotImplementedError

    def write_tags(self, gps: GpsTags) -> None:
        """Stage GPS tags to be merged into the container."""
        raise NotImplementedError

    def reencode(self) -> bytes:
        """Return the full image bytes with staged tags applied."""
        raise NotImplementedError


class IAssetStore:
    """Interface for photo libraries that hand out bytes rather than files."""

    def load_bytes(self, handle: str) -> bytes:
        """Return the current bytes of the asset."""
        raise NotImplementedError

    def persist(self, handle: str, data: bytes) -> None:
        """Store new bytes for the asset; raise `OSError` on failure."""
        raise NotImplementedError

    def creation_time(self, handle: str) -> float | None:
        """Library-recorded creation time in epoch seconds, if known."""
        raise NotImplementedError

    def has_location(self, handle: str) -> bool:
        """True when the library already holds a location for the asset."""
        raise NotImplementedError


class IProgressSink:
    """Line-oriented progress observer."""

    def append_line(self, text: str) -> None:
        """Append one line of progress text."""
        raise NotImplementedError

    def is_completed(self) -> bool:
        """True once the batch has finished."""
        raise NotImplementedError

    def summary(self) -> tuple[int, int]:
        """Return `(succeeded, failed)` of the finished batch."""
        raise NotImplementedError
