"""Location track built from parsed rows, with nearest-timestamp lookup.

Rows go through two stages: header resolution maps each of the six logical
fields to a cell, then numeric conversion produces a `LocationSample` or
drops the row.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import math

from core.models import LocationSample

# Field name -> recognised header prefixes, in match order.
FIELD_PREFIXES: dict[str, tuple[str, ...]] = {
    "timestamp": ("dat", "tim", "time"),
    "longitude": ("lon", "lng"),
    "latitude": ("lat",),
    "altitude": ("alt", "ele", "elevation"),
    "heading": ("hea", "dir", "bearing", "course"),
    "speed": ("spe", "vel"),
}

# Half-width of the index window examined around the binary-search anchor.
SEARCH_RADIUS = 2


def normalize_header(name: str) -> str:
    """Lower-case `name`, trim it and drop `-`/`_` separators."""
    return name.strip().lower().replace("-", "").replace("_", "")


def find_value(row: Mapping[str, str], prefixes: Sequence[str]) -> str | None:
    """Return the cell of the first header matching any of `prefixes`.

    Headers are visited in row (column) order; the first match wins.
    """
    for key, value in row.items():
        normalized = normalize_header(key)
        for prefix in prefixes:
            if normalized == prefix or normalized.startswith(prefix):
                return value
    return None


def resolve_row(row: Mapping[str, str]) -> LocationSample | None:
    """Map one raw row to a sample, or None when a field is missing or non-numeric.

    NaN and infinite values count as non-numeric.
    """
    values: dict[str, float] = {}
    for name, prefixes in FIELD_PREFIXES.items():
        raw = find_value(row, prefixes)
        if raw is None:
            return None
        try:
            value = float(raw)
        except ValueError:
            return None
        if not math.isfinite(value):
            return None
        values[name] = value
    return LocationSample(**values)


class LocationTrack:
    """Samples sorted by timestamp; immutable once built."""

    def __init__(self, samples: Iterable[LocationSample]) -> None:
        # sorted() is stable, so equal timestamps keep their row order
        self._samples: tuple[LocationSample, ...] = tuple(
            sorted(samples, key=lambda s: s.timestamp)
        )

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, str]]) -> LocationTrack:
        """Build a track from named rows, silently dropping incomplete ones."""
        samples = [s for s in (resolve_row(r) for r in rows) if s is not None]
        return cls(samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)

    def __getitem__(self, index: int) -> LocationSample:
        return self._samples[index]

    @property
    def samples(self) -> tuple[LocationSample, ...]:
        """All samples in timestamp order."""
        return self._samples

    def nearest(self, timestamp: float) -> LocationSample | None:
        """Return the sample closest in time to `timestamp`.

        A binary search finds an anchor index, then the five samples around
        it are compared. The window can miss the true nearest sample when
        many samples share a timestamp or density is very uneven.
        """
        samples = self._samples
        if not samples:
            return None

        left = 0
        right = len(samples) - 1
        while left < right:
            mid = (left + right) // 2
            current = samples[mid].timestamp
            if current == timestamp:
                left = right = mid
                break
            if current < timestamp:
                left = mid + 1
            else:
                right = mid - 1

        # Truncate toward zero: right may be -1 here.
        anchor = int((left + right) / 2)
        best: LocationSample | None = None
        best_delta: float | None = None
        for idx in range(anchor - SEARCH_RADIUS, anchor + SEARCH_RADIUS + 1):
            if 0 <= idx < len(samples):
                delta = abs(samples[idx].timestamp - timestamp)
                if best_delta is None or delta < best_delta:
                    best_delta = delta
                    best = samples[idx]
        return best
