"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
import pytest

import main


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"geotag": {"overwrite": False}}), encoding="utf-8")
    return path


class _InterruptedLog:
    """Log whose first wait is interrupted by Ctrl-C."""

    def __init__(self) -> None:
        self.waits = 0

    def wait(self, timeout: float | None = None) -> bool:
        self.waits += 1
        if self.waits == 1:
            raise KeyboardInterrupt
        return self.waits > 2

    def lines(self, start: int = 0) -> list[str]:
        return ["[*] processing 1/1 <a.jpg>", "[i] cancelled"][start:]


class _StubVM:
    def __init__(self) -> None:
        self.cancelled = False
        self.joined = False

    def cancel(self) -> None:
        self.cancelled = True

    def join(self) -> None:
        self.joined = True


def _args(track: Path, photos: Path, tmp_path: Path, settings: Path, *extra: str) -> list[str]:
    return [
        str(track),
        str(photos),
        "--settings",
        str(settings),
        "--log-dir",
        str(tmp_path / "logs"),
        *extra,
    ]


class TestMain:
    """Tests for argument handling and exit codes."""

    def test_success(
        self,
        track_file: Path,
        jpeg_file: Path,
        tmp_path: Path,
        settings_file: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test a successful run prints progress and exits 0."""
        code = main.main(_args(track_file, jpeg_file.parent, tmp_path, settings_file))
        out = capsys.readouterr().out
        assert code == 0
        assert "[+] IMG_0001.jpg" in out
        assert "completed update: 1 succeeded, 0 failed, 0 skipped" in out

    def test_skip_counts_as_success(
        self, track_file: Path, tagged_jpeg_file: Path, tmp_path: Path, settings_file: Path
    ) -> None:
        """Test a run where every image was skipped exits 0."""
        code = main.main(_args(track_file, tagged_jpeg_file.parent, tmp_path, settings_file))
        assert code == 0

    def test_overwrite_flag(
        self,
        track_file: Path,
        tagged_jpeg_file: Path,
        tmp_path: Path,
        settings_file: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test --overwrite beats the settings file."""
        args = _args(track_file, tagged_jpeg_file.parent, tmp_path, settings_file, "--overwrite")
        assert main.main(args) == 0
        assert "[+] tagged.jpg" in capsys.readouterr().out

    def test_no_candidates_exits_1(
        self, track_file: Path, tmp_path: Path, settings_file: Path
    ) -> None:
        """Test a run that processed nothing exits 1."""
        photos = tmp_path / "none"
        photos.mkdir()
        assert main.main(_args(track_file, photos, tmp_path, settings_file)) == 1

    def test_bad_delimiter(
        self, track_file: Path, jpeg_file: Path, tmp_path: Path, settings_file: Path
    ) -> None:
        """Test a multi-character delimiter is a usage error."""
        args = _args(track_file, jpeg_file.parent, tmp_path, settings_file, "--delimiter", "ab")
        assert main.main(args) == 2

    def test_missing_settings(self, track_file: Path, jpeg_file: Path, tmp_path: Path) -> None:
        """Test an explicit but missing settings file is a usage error."""
        args = _args(track_file, jpeg_file.parent, tmp_path, tmp_path / "nope.json")
        assert main.main(args) == 2

    def test_log_file_written(
        self, track_file: Path, jpeg_file: Path, tmp_path: Path, settings_file: Path
    ) -> None:
        """Test the diagnostic log lands in --log-dir."""
        main.main(_args(track_file, jpeg_file.parent, tmp_path, settings_file))
        logger.remove()
        logs = list((tmp_path / "logs").glob("geotag_*.log"))
        assert logs
        assert "[+] IMG_0001.jpg" in logs[0].read_text(encoding="utf-8")


class TestFollow:
    """Tests for printing the progress log while the worker runs."""

    def test_interrupt_cancels_and_prints_once(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test Ctrl-C cancels the batch and every line is still printed exactly once."""
        vm = _StubVM()
        main._follow(_InterruptedLog(), vm)  # pylint: disable=protected-access
        assert vm.cancelled
        assert vm.joined
        out = capsys.readouterr().out.splitlines()
        assert out == ["[*] processing 1/1 <a.jpg>", "[i] cancelled"]
