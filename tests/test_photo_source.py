"""Tests for directory enumeration and the in-memory asset store."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.models import AssetItem
from infrastructure.photo_source import (
    DirectoryPhotoSource,
    MemoryAssetStore,
    normalize_extensions,
)


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")


class TestDirectoryPhotoSource:
    """Tests for recursive, extension-filtered enumeration."""

    def test_five_valid_two_unsupported(self, tmp_path: Path) -> None:
        """Test only supported extensions become candidates."""
        for name in ["a.jpg", "b.JPEG", "sub/c.heic", "sub/deeper/d.HEIF", "e.Jpg"]:
            _touch(tmp_path / name)
        for name in ["notes.txt", "sub/clip.mov"]:
            _touch(tmp_path / name)
        found = DirectoryPhotoSource().enumerate(str(tmp_path))
        assert len(found) == 5
        assert all(ref.is_file for ref in found)

    def test_sorted_walk(self, tmp_path: Path) -> None:
        """Test files come out in a stable, sorted walk order."""
        for name in ["z.jpg", "a.jpg", "m/b.jpg"]:
            _touch(tmp_path / name)
        names = [ref.display_name for ref in DirectoryPhotoSource().enumerate(str(tmp_path))]
        assert names == ["a.jpg", "z.jpg", "b.jpg"]

    def test_temp_files_ignored(self, tmp_path: Path) -> None:
        """Test leftovers of an interrupted write are not picked up."""
        _touch(tmp_path / ".tmp_abc.jpg")
        _touch(tmp_path / "real.jpg")
        found = DirectoryPhotoSource().enumerate(str(tmp_path))
        assert [ref.display_name for ref in found] == ["real.jpg"]

    def test_custom_extensions(self, tmp_path: Path) -> None:
        """Test a configured extension list narrows the filter."""
        _touch(tmp_path / "a.jpg")
        _touch(tmp_path / "b.heic")
        found = DirectoryPhotoSource(["HEIC"]).enumerate(str(tmp_path))
        assert [ref.suffix for ref in found] == [".heic"]

    def test_missing_root(self, tmp_path: Path) -> None:
        """Test a missing directory yields no candidates."""
        assert DirectoryPhotoSource().enumerate(str(tmp_path / "nope")) == []

    def test_normalize_extensions(self) -> None:
        """Test extensions are lower-cased and dotted."""
        assert normalize_extensions(["JPG", ".Heic", " ", ""]) == frozenset({".jpg", ".heic"})


class TestMemoryAssetStore:
    """Tests for the dict-backed asset store."""

    def test_round_trip(self) -> None:
        """Test bytes, creation time and location flag per handle."""
        store = MemoryAssetStore([AssetItem("a", b"one", creation_time=5.0)])
        store.add(AssetItem("b", b"two", has_location=True))
        assert store.handles() == ["a", "b"]
        assert store.load_bytes("a") == b"one"
        assert store.creation_time("a") == 5.0
        assert store.creation_time("b") is None
        assert not store.has_location("a")
        assert store.has_location("b")

    def test_persist_marks_location(self) -> None:
        """Test persisted bytes replace the asset and flag its location."""
        store = MemoryAssetStore([AssetItem("a", b"old")])
        store.persist("a", b"new")
        assert store.load_bytes("a") == b"new"
        assert store.has_location("a")

    def test_unknown_handle(self) -> None:
        """Test an unknown handle raises OSError."""
        with pytest.raises(OSError):
            MemoryAssetStore().load_bytes("missing")
