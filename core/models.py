"""Core domain models for location samples, image references and outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class LocationSample:
    """A single timestamped GPS fix read from a track file.

    Values are kept exactly as parsed; no range validation is applied.
    """

    timestamp: float
    latitude: float
    longitude: float
    altitude: float
    heading: float
    speed: float


@dataclass
class ImageReference:
    """Handle to one image: a file on disk or an in-memory asset.

    Exactly one of `path` or `asset_id` is expected to be set. For assets the
    caller supplies `data`; the core never touches the asset store itself.
    """

    path: str | None = None
    asset_id: str | None = None
    data: bytes | None = None

    @property
    def is_file(self) -> bool:
        """True when the reference points at a file on disk."""
        return self.path is not None

    @property
    def display_name(self) -> str:
        """Short name used in progress lines."""
        if self.path is not None:
            return self.path.replace("\\", "/").rsplit("/", 1)[-1]
        return self.asset_id or "<asset>"

    @property
    def suffix(self) -> str:
        """Lower-cased file extension including the dot, or empty string."""
        name = self.display_name
        if "." not in name:
            return ""
        return "." + name.rsplit(".", 1)[-1].lower()


@dataclass(frozen=True)
class GeotagRequest:
    """What the writer needs to geotag one image."""

    image: ImageReference
    sample: LocationSample
    overwrite: bool = False


class WriteOutcome(Enum):
    """Non-error results of a geotag write."""

    WRITTEN = "written"
    SKIPPED = "skipped"


@dataclass
class WriteResult:
    """Outcome of a write plus the new bytes for in-memory images."""

    outcome: WriteOutcome
    data: bytes | None = None


class BatchState(Enum):
    """Lifecycle of a batch run."""

    IDLE = "idle"
    LOADING = "loading"
    SCANNING = "scanning"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass
class AssetItem:
    """A single entry of an in-memory asset store."""

    asset_id: str
    data: bytes
    creation_time: float | None = None
    has_location: bool = False


@dataclass(frozen=True)
class GpsTags:
    """GPS values in the shape EXIF stores them: magnitude plus reference."""

    latitude_ref: str
    latitude: float
    longitude_ref: str
    longitude: float
    altitude: float

    @classmethod
    def from_sample(cls, sample: LocationSample) -> GpsTags:
        """Split signed sample coordinates into refs and magnitudes."""
        return cls(
            latitude_ref="N" if sample.latitude >= 0 else "S",
            latitude=abs(sample.latitude),
            longitude_ref="E" if sample.longitude >= 0 else "W",
            longitude=abs(sample.longitude),
            altitude=sample.altitude,
        )
