"""Photo sources: recursive directory walk and an in-memory asset store."""

from __future__ import annotations

from collections.abc import Iterable
import os

from loguru import logger

from core.models import AssetItem, ImageReference
from core.services.interfaces import IAssetStore
from infrastructure.metadata import SUPPORTED_SUFFIXES


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions and make sure each starts with a dot."""
    result = set()
    for ext in extensions:
        ext = str(ext).strip().lower()
        if not ext:
            continue
        result.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(result)


class DirectoryPhotoSource:
    """Enumerates image files below a root directory."""

    def __init__(self, extensions: Iterable[str] | None = None) -> None:
        self._extensions = normalize_extensions(extensions or SUPPORTED_SUFFIXES)

    def enumerate(self, root: str) -> list[ImageReference]:
        """Return image references for matching files under `root`, recursively.

        Hidden temp files left by an interrupted write (`.tmp_*`) are ignored.
        """
        found: list[ImageReference] = []

        def _on_error(ex: OSError) -> None:
            logger.warning("Walk error: {}", ex)

        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
            dirnames.sort()
            for name in sorted(filenames):
                if name.startswith(".tmp_"):
                    continue
                _, ext = os.path.splitext(name)
                if ext.lower() in self._extensions:
                    found.append(ImageReference(path=os.path.join(dirpath, name)))
        return found


class MemoryAssetStore(IAssetStore):
    """Asset store keeping image bytes in a dict, keyed by asset id."""

    def __init__(self, items: Iterable[AssetItem] = ()) -> None:
        self._items: dict[str, AssetItem] = {item.asset_id: item for item in items}

    def add(self, item: AssetItem) -> None:
        """Insert or replace an asset."""
        self._items[item.asset_id] = item

    def handles(self) -> list[str]:
        """All asset ids in insertion order."""
        return list(self._items)

    def _get(self, handle: str) -> AssetItem:
        try:
            return self._items[handle]
        except KeyError as ex:
            raise OSError(f"unknown asset: {handle}") from ex

    def load_bytes(self, handle: str) -> bytes:
        return self._get(handle).data

    def persist(self, handle: str, data: bytes) -> None:
        item = self._get(handle)
        item.data = data
        item.has_location = True

    def creation_time(self, handle: str) -> float | None:
        return self._get(handle).creation_time

    def has_location(self, handle: str) -> bool:
        return self._get(handle).has_location
