"""Thread-safe progress log shared between the batch worker and its observer."""

from __future__ import annotations

import threading

from loguru import logger

from core.services.interfaces import BatchResult, IProgressSink

ERROR = "[E]"
INFO = "[i]"
PROGRESS = "[*]"
SUCCESS = "[+]"
FAILURE = "[-]"


class ProgressLog(IProgressSink):
    """Append-only list of status lines plus the batch tally.

    The worker is the only writer. Readers get snapshots; each append is a
    single locked operation so a snapshot never holds a partial line.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._lines: list[str] = []
        self._completed = threading.Event()
        self.result = BatchResult()

    def append_line(self, text: str) -> None:
        with self._lock:
            self._lines.append(text)
        if text.startswith(ERROR):
            logger.error("{}", text)
        elif text.startswith(FAILURE):
            logger.warning("{}", text)
        else:
            logger.info("{}", text)

    def error(self, text: str) -> None:
        """Append an `[E]` line."""
        self.append_line(f"{ERROR} {text}")

    def info(self, text: str) -> None:
        """Append an `[i]` line."""
        self.append_line(f"{INFO} {text}")

    def progress(self, text: str) -> None:
        """Append a `[*]` line."""
        self.append_line(f"{PROGRESS} {text}")

    def lines(self, start: int = 0) -> list[str]:
        """Snapshot of lines from index `start` on."""
        with self._lock:
            return self._lines[start:]

    @property
    def text(self) -> str:
        """All lines joined, newline-terminated."""
        return "".join(f"{line}\n" for line in self.lines())

    def reset(self) -> None:
        """Clear lines, counters and the completed flag for a new run."""
        with self._lock:
            self._lines = []
            self.result = BatchResult()
        self._completed.clear()

    def mark_completed(self) -> None:
        """Flip the completed flag."""
        self._completed.set()

    def is_completed(self) -> bool:
        return self._completed.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until completed or `timeout`; return the flag."""
        return self._completed.wait(timeout)

    def summary(self) -> tuple[int, int]:
        return self.result.summary()
