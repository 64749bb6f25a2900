"""Tests for the thread-safe progress log."""

from __future__ import annotations

import threading

from app.viewmodels.progress_log import ProgressLog


class TestProgressLog:
    """Tests for line markers, snapshots and the completed flag."""

    def test_markers(self) -> None:
        """Test helper methods prefix lines with their severity marker."""
        log = ProgressLog()
        log.error("bad")
        log.info("note")
        log.progress("step")
        log.append_line("[+] done")
        assert log.lines() == ["[E] bad", "[i] note", "[*] step", "[+] done"]
        assert log.text == "[E] bad\n[i] note\n[*] step\n[+] done\n"

    def test_lines_from_cursor(self) -> None:
        """Test a start index returns only newer lines."""
        log = ProgressLog()
        for i in range(4):
            log.progress(str(i))
        assert log.lines(2) == ["[*] 2", "[*] 3"]

    def test_snapshot_is_a_copy(self) -> None:
        """Test a snapshot does not change when lines are appended later."""
        log = ProgressLog()
        log.info("a")
        snap = log.lines()
        log.info("b")
        assert snap == ["[i] a"]

    def test_completed_flag(self) -> None:
        """Test the flag flips on completion and clears on reset."""
        log = ProgressLog()
        assert not log.is_completed()
        assert not log.wait(0.01)
        log.mark_completed()
        assert log.is_completed()
        assert log.wait(0)
        log.reset()
        assert not log.is_completed()
        assert log.lines() == []

    def test_summary(self) -> None:
        """Test the summary reports succeeded and failed counts."""
        log = ProgressLog()
        log.result.items_succeeded = 3
        log.result.items_failed = 1
        log.result.items_skipped = 2
        assert log.summary() == (3, 1)
        log.reset()
        assert log.summary() == (0, 0)

    def test_concurrent_appends(self) -> None:
        """Test appends from a writer thread never tear a reader's snapshot."""
        log = ProgressLog()

        def _writer() -> None:
            for i in range(500):
                log.progress(f"line {i}")
            log.mark_completed()

        thread = threading.Thread(target=_writer)
        thread.start()
        while not log.is_completed():
            assert all(line.startswith("[*] line ") for line in log.lines())
        thread.join()
        assert len(log.lines()) == 500
        assert log.lines()[-1] == "[*] line 499"
