"""Operator command sources for the load controller."""

from __future__ import annotations

import logging
import os
import queue
import sys
from typing import Iterable, List, Optional, Protocol, TextIO, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class CommandSource(Protocol):
    """Yields single-character commands typed since the last call, without blocking."""

    def read_pending(self) -> List[str]: ...


class QueueCommandSource:
    """Commands pushed programmatically, e.g. from tests or another thread."""

    def __init__(self, commands: Iterable[str] = ()):
        self._queue: "queue.Queue[str]" = queue.Queue()
        self.feed(*commands)

    def feed(self, *commands: str) -> None:
        for command in commands:
            for key in command:
                self._queue.put(key)

    def read_pending(self) -> List[str]:
        keys = []
        while True:
            try:
                keys.append(self._queue.get_nowait())
            except queue.Empty:
                return keys


class ConsoleCommandSource:
    """Reads keystrokes from the terminal without waiting for Enter.

    Use as a context manager so the terminal mode is restored on exit.
    Falls back to line-buffered reads when stdin is not a TTY.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdin
        self._saved_attrs = None
        self._eof = False

    def __enter__(self) -> "ConsoleCommandSource":
        if os.name != "nt" and self.stream.isatty():
            import termios
            import tty

            fd = self.stream.fileno()
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._saved_attrs is not None:
            import termios

            termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def read_pending(self) -> List[str]:
        if self._eof:
            return []
        if os.name == "nt":
            return self._read_windows()
        return self._read_posix()

    def _read_windows(self) -> List[str]:
        import msvcrt

        keys = []
        while msvcrt.kbhit():
            keys.append(msvcrt.getwch())
        return keys

    def _read_posix(self) -> List[str]:
        import select

        keys = []
        fd = self.stream.fileno()
        while select.select([fd], [], [], 0)[0]:
            data = os.read(fd, 1024)
            if not data:
                logger.debug("Command input closed")
                self._eof = True
                break
            keys.extend(ch for ch in data.decode(errors="ignore") if not ch.isspace())
        return keys
