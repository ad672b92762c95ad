"""
Operator console input.

Keys are read on a daemon thread that blocks on the terminal and forwards
each key to the event loop, so a pending read never holds up shutdown.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import select
import signal
import sys
import threading
from enum import Enum
from types import TracebackType
from typing import Protocol, TextIO

from metricsd.core import get_logger

if sys.platform != "win32":
    import termios
    import tty

logger = get_logger(__name__)

ESC_KEY = "\x1b"
ESCAPE_SEQUENCE_WINDOW = 0.05


class OperatorCommand(str, Enum):
    """Operator triggers recognised by the control surface."""

    PRINT = "print"
    REPORT = "report"
    EXIT = "exit"


_KEYMAP = {
    "p": OperatorCommand.PRINT,
    "r": OperatorCommand.REPORT,
    ESC_KEY: OperatorCommand.EXIT,
}


def parse_key(key: str) -> OperatorCommand | None:
    """Map a key to a command; None for keys that should be ignored."""
    return _KEYMAP.get(key.lower())


class KeySource(Protocol):
    async def next_key(self) -> str | None:
        """Next key pressed, or None once input is closed."""
        ...


class TerminalKeyReader:
    """Reads single key presses from a stream without waiting for Enter.

    Use as a context manager from inside the running event loop. When the
    stream is a terminal it is switched to cbreak mode for the duration and
    restored on exit.

    Arrow and function keys arrive as escape sequences (``ESC [ A``). When
    more bytes follow an ESC within ``ESCAPE_SEQUENCE_WINDOW`` seconds the
    whole sequence is dropped; only a lone ESC is forwarded as a key.
    """

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdin
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._saved_attrs: list | None = None
        self._thread: threading.Thread | None = None
        self._fd = self._select_fd()

    def _select_fd(self) -> int | None:
        if sys.platform == "win32":
            return None
        try:
            return self._stream.fileno()
        except (OSError, ValueError):
            # In-memory streams have no descriptor; read them as text.
            return None

    def __enter__(self) -> TerminalKeyReader:
        self._loop = asyncio.get_running_loop()
        if self._fd is not None and self._stream.isatty():
            self._saved_attrs = termios.tcgetattr(self._fd)
            tty.setcbreak(self._fd)
        self._thread = threading.Thread(target=self._read_keys, name="key-reader", daemon=True)
        self._thread.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._saved_attrs is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    def _read_keys(self) -> None:
        read_key = self._read_text_key if self._fd is None else self._read_fd_key
        while True:
            try:
                key = read_key()
            except (OSError, ValueError):
                logger.debug("Operator input unreadable; treating as closed")
                key = ""
            if not key:
                self.push(None)
                return
            if key == ESC_KEY and self._discard_escape_sequence():
                logger.debug("Ignoring escape sequence from a special key")
                continue
            self.push(key)

    def _read_text_key(self) -> str:
        return self._stream.read(1)

    def _read_fd_key(self) -> str:
        # Read the descriptor directly so no bytes hide in a Python buffer
        # where select() cannot see them.
        assert self._fd is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = os.read(self._fd, 1)
            if not data:
                return ""
            key = decoder.decode(data)
            if key:
                return key

    def _discard_escape_sequence(self) -> bool:
        """Drain bytes that follow an ESC; True if there were any."""
        if self._fd is None:
            return False
        drained = False
        while select.select([self._fd], [], [], ESCAPE_SEQUENCE_WINDOW)[0]:
            if not os.read(self._fd, 1):
                break
            drained = True
        return drained

    def push(self, key: str | None) -> None:
        """Enqueue a key from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, key)
        except RuntimeError:
            # The loop closed between the check and the call.
            return

    async def next_key(self) -> str | None:
        return await self._queue.get()


def install_signal_handlers(reader: TerminalKeyReader) -> None:
    """Route SIGINT and SIGTERM to the exit key."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, reader.push, ESC_KEY)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform", data={"signal": sig.name})
