"""Raw-mode keyboard input decoded into key names."""

import asyncio
import inspect
import os
import re
import sys
from collections.abc import Callable
from typing import Any, TextIO

import structlog

log = structlog.get_logger()

WILDCARD = "*"

SEQUENCE_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z~]|\x1bO[A-Za-z]|\x1b|.", re.DOTALL)

SPECIAL_KEYS = {
    "\x03": "ctrl+c",
    "\x1b": "escape",
    "\x7f": "backspace",
    "\b": "backspace",
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    " ": "space",
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1bOP": "f1",
    "\x1bOQ": "f2",
    "\x1bOR": "f3",
    "\x1bOS": "f4",
}

KeyHandler = Callable[[str], Any]
ErrorSink = Callable[[str, BaseException], None]


def parse_key(sequence: str) -> str:
    """Map one raw input sequence to a key name."""
    if sequence in SPECIAL_KEYS:
        return SPECIAL_KEYS[sequence]
    if len(sequence) == 1 and 1 <= ord(sequence) <= 26:
        return f"ctrl+{chr(ord(sequence) + 96)}"
    return sequence


def split_sequences(data: str) -> list[str]:
    """Split a read that may hold several keys into single sequences."""
    return SEQUENCE_RE.findall(data)


def _log_error(key: str, exc: BaseException) -> None:
    log.error("key_handler_failed", key=key, exc_info=exc)


class KeyboardHandler:
    """
    Deliver decoded keys to registered handlers.

    Handlers run on the event loop. A handler's exception is passed to the
    error sink and never stops the input loop. ``ctrl+c`` always restores the
    terminal and exits, whatever is registered.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        error_sink: ErrorSink | None = None,
        on_interrupt: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize the KeyboardHandler.

        Args:
            stream: Terminal input. Default stdin.
            error_sink: Receives (key, exception) for failing handlers.
                Default logs the exception.
            on_interrupt: Called before exiting on ctrl+c.
        """
        self._stream = stream or sys.stdin
        self._error_sink = error_sink or _log_error
        self._on_interrupt = on_interrupt
        self._handlers: dict[str, KeyHandler] = {}
        self._saved_mode: list | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_active(self) -> bool:
        """Whether the handler is reading input."""
        return self._loop is not None

    def on(self, key: str, handler: KeyHandler) -> None:
        """Register ``handler`` for ``key``; ``*`` receives every key."""
        self._handlers[key] = handler

    def off(self, key: str) -> None:
        """Remove the handler for key."""
        self._handlers.pop(key, None)

    def start(self) -> None:
        """Enter raw mode and start reading from the stream."""
        if self.is_active:
            return
        self._enter_raw_mode()
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self._stream.fileno(), self._on_readable)

    def stop(self) -> None:
        """Stop reading and restore the terminal mode."""
        if self._loop is not None:
            self._loop.remove_reader(self._stream.fileno())
            self._loop = None
        self._restore_mode()

    def _enter_raw_mode(self) -> None:
        if not self._stream.isatty():
            return
        # POSIX only
        import termios
        import tty

        fd = self._stream.fileno()
        self._saved_mode = termios.tcgetattr(fd)
        tty.setraw(fd)

    def _restore_mode(self) -> None:
        if self._saved_mode is None:
            return
        import termios

        termios.tcsetattr(self._stream.fileno(), termios.TCSADRAIN, self._saved_mode)
        self._saved_mode = None

    def _on_readable(self) -> None:
        data = os.read(self._stream.fileno(), 1024)
        if data:
            self.feed(data.decode("utf-8", errors="replace"))

    def feed(self, data: str) -> None:
        """Decode ``data`` and schedule a dispatch for each key in it."""
        for sequence in split_sequences(data):
            key = parse_key(sequence)
            if key == "ctrl+c":
                self.interrupt()
            task = asyncio.ensure_future(self.dispatch(key))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def interrupt(self) -> None:
        """Restore the terminal and exit."""
        self.stop()
        if self._on_interrupt is not None:
            self._on_interrupt()
        raise SystemExit(0)

    async def dispatch(self, key: str) -> None:
        """Run the handler for ``key``, then the wildcard handler."""
        for name in (key, WILDCARD):
            handler = self._handlers.get(name)
            if handler is None:
                continue
            try:
                result = handler(key)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._error_sink(key, exc)
